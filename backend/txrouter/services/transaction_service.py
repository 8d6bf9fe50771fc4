"""Transaction routing state service.

All routing state changes go through ``compare_and_set``: a conditional
UPDATE on (id, status, version). A transaction that changed since it was read
raises ConcurrencyConflict instead of being overwritten.
"""

from math import ceil

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.core.exceptions import ConcurrencyConflict, ConflictError, NotFoundError
from txrouter.models.base import utcnow
from txrouter.models.enums import RoutingOutcome, TransactionStatus
from txrouter.models.routing_history import RoutingEvent
from txrouter.models.routing_rule import RoutingRule
from txrouter.models.transaction import Transaction
from txrouter.schemas.transaction import TransactionIngest
from txrouter.services.audit_service import AuditService
from txrouter.services.project_directory import ProjectDirectory
from txrouter.services.routing_engine import RoutingDecision, RoutingEngine
from txrouter.services.rule_service import RuleService

logger = structlog.get_logger()

_CLEARED_ROUTING = {
    "assigned_project_id": None,
    "suggested_project_id": None,
    "confidence_score": None,
    "matched_rule_id": None,
    "needs_review": False,
    "routing_note": None,
}


def decision_values(decision: RoutingDecision) -> dict | None:
    """Column values a decision writes, or None when the row stays untouched."""
    if decision.outcome == RoutingOutcome.routed:
        return {
            **_CLEARED_ROUTING,
            "status": TransactionStatus.routed,
            "assigned_project_id": decision.project_id,
            "confidence_score": decision.confidence,
            "matched_rule_id": decision.rule_id,
            "routing_note": decision.detail,
        }
    if decision.outcome == RoutingOutcome.suggested:
        return {
            **_CLEARED_ROUTING,
            "status": TransactionStatus.suggested,
            "suggested_project_id": decision.project_id,
            "confidence_score": decision.confidence,
            "needs_review": True,
            "routing_note": decision.detail,
        }
    if decision.outcome == RoutingOutcome.unresolved:
        # Stays unrouted, flagged for operator review
        return {
            **_CLEARED_ROUTING,
            "status": TransactionStatus.unrouted,
            "matched_rule_id": decision.rule_id,
            "needs_review": True,
            "routing_note": decision.detail and decision.detail[:500],
        }
    return None


def _already_applied(txn: Transaction, values: dict) -> bool:
    return all(getattr(txn, key) == value for key, value in values.items())


class TransactionService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ── Queries ────────────────────────────────────────

    async def list_transactions(
        self,
        company_id: int,
        page: int = 1,
        per_page: int = 50,
        status: TransactionStatus | None = None,
        needs_review: bool | None = None,
        min_confidence: int | None = None,
        search: str | None = None,
    ) -> dict:
        """List a company's transactions with pagination and filters, oldest first."""
        query = select(Transaction).where(Transaction.company_id == company_id)

        # Apply filters
        if status is not None:
            query = query.where(Transaction.status == status)
        if needs_review is not None:
            query = query.where(Transaction.needs_review == needs_review)
        if min_confidence is not None:
            query = query.where(Transaction.confidence_score >= min_confidence)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Transaction.memo.ilike(pattern),
                Transaction.description.ilike(pattern),
                Transaction.counterparty_name.ilike(pattern),
                Transaction.reference_number.ilike(pattern),
            ))

        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar_one()

        query = query.order_by(Transaction.transaction_date, Transaction.id)
        query = query.offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(query)

        return {
            "data": list(result.scalars().all()),
            "meta": {
                "total": total,
                "page": page,
                "per_page": per_page,
                "pages": ceil(total / per_page) if per_page else 0,
            },
        }

    async def get_unrouted(self, company_id: int, page: int = 1, per_page: int = 50) -> dict:
        """Unrouted transactions for a company, oldest first."""
        return await self.list_transactions(
            company_id, page=page, per_page=per_page, status=TransactionStatus.unrouted
        )

    async def get_transaction(self, company_id: int, transaction_id: int) -> Transaction:
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.company_id == company_id,
            )
        )
        txn = result.scalar_one_or_none()
        if not txn:
            raise NotFoundError("Transaction")
        return txn

    async def history(self, company_id: int, transaction_id: int) -> list[RoutingEvent]:
        await self.get_transaction(company_id, transaction_id)
        return await self.audit.list_for_transaction(company_id, transaction_id)

    # ── Feed intake ────────────────────────────────────

    async def ingest(self, company_id: int, records: list[TransactionIngest]) -> dict:
        """Store feed records as unrouted transactions.

        Records already known by external_id are left as they are, routing
        state included.
        """
        external_ids = [r.external_id for r in records]
        result = await self.db.execute(
            select(Transaction.external_id).where(
                Transaction.company_id == company_id,
                Transaction.external_id.in_(external_ids),
            )
        )
        known = set(result.scalars().all())

        created = 0
        for record in records:
            if record.external_id in known:
                continue
            known.add(record.external_id)
            self.db.add(Transaction(
                company_id=company_id,
                status=TransactionStatus.unrouted,
                version=1,
                **record.model_dump(),
            ))
            created += 1
        await self.db.flush()

        logger.info(
            "transactions_ingested",
            company_id=company_id,
            received=len(records),
            created=created,
        )
        return {"received": len(records), "created": created, "existing": len(records) - created}

    # ── State changes ──────────────────────────────────

    async def compare_and_set(self, txn: Transaction, expected_status: TransactionStatus, values: dict) -> None:
        """Write routing state only if the row still has the status and version we read."""
        expected_version = txn.version
        result = await self.db.execute(
            update(Transaction)
            .where(
                Transaction.id == txn.id,
                Transaction.status == expected_status,
                Transaction.version == expected_version,
            )
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(txn)
        if result.rowcount != 1:
            raise ConcurrencyConflict(txn.id)

    async def apply_decision(
        self,
        company_id: int,
        txn: Transaction,
        decision: RoutingDecision,
        run_id: int | None = None,
    ) -> bool:
        """Persist a routing decision for an unrouted transaction.

        Returns False when nothing had to be written.
        """
        values = decision_values(decision)
        if values is None or _already_applied(txn, values):
            return False

        await self.compare_and_set(txn, TransactionStatus.unrouted, values)

        if decision.outcome == RoutingOutcome.routed and decision.rule_id is not None:
            await self.db.execute(
                update(RoutingRule)
                .where(RoutingRule.id == decision.rule_id)
                .values(matches_count=RoutingRule.matches_count + 1, last_matched_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        await self.audit.record(
            company_id,
            txn.id,
            decision.outcome,
            rule_id=decision.rule_id,
            project_id=decision.project_id,
            confidence=decision.confidence,
            detail=decision.detail,
            run_id=run_id,
        )
        return True

    async def route_one(self, company_id: int, transaction_id: int) -> RoutingDecision:
        """Run the routing engine on a single unrouted transaction."""
        txn = await self.get_transaction(company_id, transaction_id)
        if txn.status != TransactionStatus.unrouted:
            raise ConflictError(f"Transaction is already {txn.status.value}")

        rules = await RuleService(self.db).active_compiled(company_id)
        # In-memory directory: lookups never query this session
        engine = RoutingEngine(await ProjectDirectory(self.db, company_id).snapshot())
        decision = await engine.decide(txn, rules)

        try:
            await self.apply_decision(company_id, txn, decision)
        except ConcurrencyConflict:
            await self.audit.record(company_id, txn.id, RoutingOutcome.conflict, detail="single routing")
            raise ConflictError("Transaction changed while it was being routed")

        logger.info(
            "transaction_routed",
            company_id=company_id,
            transaction_id=txn.id,
            outcome=decision.outcome.value,
            rule_id=decision.rule_id,
        )
        return decision

    async def reset(self, company_id: int, transaction_id: int) -> Transaction:
        """Return a transaction to unrouted, clearing assignment and suggestion."""
        txn = await self.get_transaction(company_id, transaction_id)
        if txn.status == TransactionStatus.unrouted and not txn.needs_review:
            return txn
        try:
            await self.compare_and_set(
                txn, txn.status, {**_CLEARED_ROUTING, "status": TransactionStatus.unrouted}
            )
        except ConcurrencyConflict:
            raise ConflictError("Transaction changed while it was being reset")
        await self.audit.record(company_id, txn.id, RoutingOutcome.reset)
        return txn

    async def accept_suggestion(self, company_id: int, transaction_id: int) -> Transaction:
        """Route a suggested transaction to its suggested project."""
        txn = await self.get_transaction(company_id, transaction_id)
        if txn.status != TransactionStatus.suggested or txn.suggested_project_id is None:
            raise ConflictError("Transaction has no pending suggestion")

        project_id = txn.suggested_project_id
        confidence = txn.confidence_score
        try:
            await self.compare_and_set(
                txn,
                TransactionStatus.suggested,
                {**_CLEARED_ROUTING, "status": TransactionStatus.routed, "assigned_project_id": project_id},
            )
        except ConcurrencyConflict:
            raise ConflictError("Transaction changed while the suggestion was being accepted")
        await self.audit.record(
            company_id,
            txn.id,
            RoutingOutcome.suggestion_accepted,
            project_id=project_id,
            confidence=confidence,
        )
        return txn
