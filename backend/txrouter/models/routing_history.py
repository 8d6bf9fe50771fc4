"""Routing history and batch run models."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from txrouter.models.base import Base, utcnow
from txrouter.models.enums import RoutingOutcome, RunStatus, enum_column


class RoutingEvent(Base):
    """One routing decision, for operator-facing history views."""

    __tablename__ = "routing_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(nullable=False)
    transaction_id: Mapped[int] = mapped_column(ForeignKey("transactions.id"), nullable=False)
    run_id: Mapped[int | None] = mapped_column(ForeignKey("routing_runs.id"), nullable=True)
    outcome: Mapped[RoutingOutcome] = mapped_column(enum_column(RoutingOutcome), nullable=False)
    rule_id: Mapped[int | None] = mapped_column(nullable=True)
    project_id: Mapped[int | None] = mapped_column(nullable=True)
    confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    detail: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_routing_events_transaction", "transaction_id"),
    )


class RoutingRun(Base):
    """One auto-routing pass over a company's unrouted transactions."""

    __tablename__ = "routing_runs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(nullable=False, index=True)
    status: Mapped[RunStatus] = mapped_column(enum_column(RunStatus), nullable=False, default=RunStatus.running)
    total: Mapped[int] = mapped_column(Integer, default=0)
    routed: Mapped[int] = mapped_column(Integer, default=0)
    suggested: Mapped[int] = mapped_column(Integer, default=0)
    unresolved: Mapped[int] = mapped_column(Integer, default=0)
    no_match: Mapped[int] = mapped_column(Integer, default=0)
    conflicts: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one running pass per company
        Index(
            "uq_routing_runs_company_running",
            "company_id",
            unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )
