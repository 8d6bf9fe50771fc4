"""Routing rule model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from txrouter.models.base import Base, TimestampMixin
from txrouter.models.enums import FieldType, MatchType, enum_column


class RoutingRule(Base, TimestampMixin):
    """An operator-ordered rule that routes matching transactions to a project.

    Rules are evaluated by ascending priority, then by creation time. A rule
    without a target project is an auto-detect rule: the project is looked up
    from the matched text.
    """

    __tablename__ = "routing_rules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_type: Mapped[FieldType] = mapped_column(enum_column(FieldType), nullable=False)
    field_name: Mapped[str | None] = mapped_column(String(100), nullable=True)  # custom_field key
    match_type: Mapped[MatchType] = mapped_column(enum_column(MatchType), nullable=False)
    match_value: Mapped[str] = mapped_column(String(500), nullable=False)
    target_project_id: Mapped[int | None] = mapped_column(
        ForeignKey("projects.id"), nullable=True
    )  # NULL = auto-detect
    priority: Mapped[int] = mapped_column(Integer, default=0)  # lower = checked first
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    case_sensitive: Mapped[bool] = mapped_column(Boolean, default=False)
    exclude_patterns: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Statistics
    matches_count: Mapped[int] = mapped_column(Integer, default=0)
    last_matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Bumped on every edit; keys the compiled rule cache
    revision: Mapped[int] = mapped_column(Integer, default=1)

    __table_args__ = (
        Index("idx_routing_rules_company_active", "company_id", "is_active"),
    )

    @property
    def is_auto_detect(self) -> bool:
        return self.target_project_id is None
