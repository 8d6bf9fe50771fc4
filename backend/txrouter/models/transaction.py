"""Transaction model."""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from txrouter.models.base import Base, TimestampMixin
from txrouter.models.enums import TransactionStatus, TransactionType, enum_column


class Transaction(Base, TimestampMixin):
    """A financial transaction received from the accounting feed.

    Routing state (status, assignment, suggestion) is only written by the
    routing engine and the bulk assigner, always through a conditional update
    on (status, version).
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(nullable=False)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(enum_column(TransactionType), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    line_items: Mapped[list | None] = mapped_column(JSON, nullable=True)  # item names
    custom_fields: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Routing state
    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus), nullable=False, default=TransactionStatus.unrouted
    )
    assigned_project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    suggested_project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    confidence_score: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100
    matched_rule_id: Mapped[int | None] = mapped_column(ForeignKey("routing_rules.id"), nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    routing_note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("company_id", "external_id", name="uq_transactions_company_external"),
        Index("idx_transactions_company_status", "company_id", "status"),
        CheckConstraint("confidence_score BETWEEN 0 AND 100", name="ck_transactions_confidence_range"),
    )
