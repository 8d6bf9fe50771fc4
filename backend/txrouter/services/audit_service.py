"""Routing history sink."""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.models.enums import RoutingOutcome
from txrouter.models.routing_history import RoutingEvent

logger = structlog.get_logger()


class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        company_id: int,
        transaction_id: int,
        outcome: RoutingOutcome,
        rule_id: int | None = None,
        project_id: int | None = None,
        confidence: int | None = None,
        detail: str | None = None,
        run_id: int | None = None,
    ) -> None:
        """Append one history event. Failures are logged, never raised."""
        try:
            async with self.db.begin_nested():
                self.db.add(RoutingEvent(
                    company_id=company_id,
                    transaction_id=transaction_id,
                    run_id=run_id,
                    outcome=outcome,
                    rule_id=rule_id,
                    project_id=project_id,
                    confidence=confidence,
                    detail=(detail or None) and detail[:500],
                ))
        except SQLAlchemyError as e:
            logger.error(
                "routing_event_write_failed",
                transaction_id=transaction_id,
                outcome=outcome.value,
                error=str(e),
            )

    async def list_for_transaction(self, company_id: int, transaction_id: int) -> list[RoutingEvent]:
        result = await self.db.execute(
            select(RoutingEvent)
            .where(
                RoutingEvent.company_id == company_id,
                RoutingEvent.transaction_id == transaction_id,
            )
            .order_by(RoutingEvent.created_at, RoutingEvent.id)
        )
        return list(result.scalars().all())
