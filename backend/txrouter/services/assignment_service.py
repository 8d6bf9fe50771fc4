"""Bulk manual assignment of transactions to a project.

Each id is handled on its own, inside its own savepoint: a transaction that is
already routed, missing, changed underneath us or failing to write is reported
and skipped, the rest are assigned.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.core.exceptions import ConcurrencyConflict, NotFoundError
from txrouter.models.enums import AssignmentOutcome, RoutingOutcome, TransactionStatus
from txrouter.models.transaction import Transaction
from txrouter.schemas.transaction import AssignmentResult
from txrouter.services.project_directory import ProjectDirectory
from txrouter.services.transaction_service import TransactionService

logger = structlog.get_logger()


class AssignmentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.transactions = TransactionService(db)

    async def assign(self, company_id: int, transaction_ids: list[int], project_id: int) -> list[AssignmentResult]:
        """Route every listed transaction to ``project_id``; one result per input id."""
        if not await ProjectDirectory(self.db, company_id).exists(project_id):
            raise NotFoundError("Project")

        result = await self.db.execute(
            select(Transaction).where(
                Transaction.company_id == company_id,
                Transaction.id.in_(set(transaction_ids)),
            )
        )
        by_id = {txn.id: txn for txn in result.scalars().all()}

        results: list[AssignmentResult] = []
        for transaction_id in transaction_ids:
            results.append(await self._assign_one(company_id, by_id.get(transaction_id), transaction_id, project_id))

        assigned = sum(1 for r in results if r.assigned)
        logger.info(
            "bulk_assignment_finished",
            company_id=company_id,
            project_id=project_id,
            requested=len(transaction_ids),
            assigned=assigned,
            skipped=len(results) - assigned,
        )
        return results

    async def _assign_one(
        self,
        company_id: int,
        txn: Transaction | None,
        transaction_id: int,
        project_id: int,
    ) -> AssignmentResult:
        if txn is None:
            return AssignmentResult(
                transaction_id=transaction_id,
                outcome=AssignmentOutcome.skipped_not_found,
                reason="not_found",
            )
        if txn.status == TransactionStatus.routed:
            return AssignmentResult(
                transaction_id=transaction_id,
                outcome=AssignmentOutcome.skipped_already_routed,
                reason="already_routed",
            )

        try:
            async with self.db.begin_nested():
                await self.transactions.compare_and_set(
                    txn,
                    txn.status,
                    {
                        "status": TransactionStatus.routed,
                        "assigned_project_id": project_id,
                        "suggested_project_id": None,
                        "confidence_score": None,
                        "matched_rule_id": None,
                        "needs_review": False,
                        "routing_note": "manual assignment",
                    },
                )
        except ConcurrencyConflict:
            await self.db.refresh(txn)
            await self.transactions.audit.record(
                company_id, transaction_id, RoutingOutcome.conflict, project_id=project_id,
                detail="manual assignment",
            )
            # A concurrent writer may have just routed it
            if txn.status == TransactionStatus.routed:
                return AssignmentResult(
                    transaction_id=transaction_id,
                    outcome=AssignmentOutcome.skipped_already_routed,
                    reason="already_routed",
                )
            return AssignmentResult(
                transaction_id=transaction_id,
                outcome=AssignmentOutcome.skipped_conflict,
                reason="concurrency_conflict",
            )
        except SQLAlchemyError as e:
            logger.error(
                "bulk_assignment_write_failed",
                company_id=company_id,
                transaction_id=transaction_id,
                error=str(e),
            )
            return AssignmentResult(
                transaction_id=transaction_id,
                outcome=AssignmentOutcome.skipped_error,
                reason="write_failed",
            )

        await self.transactions.audit.record(
            company_id, transaction_id, RoutingOutcome.manually_assigned, project_id=project_id
        )
        return AssignmentResult(transaction_id=transaction_id, outcome=AssignmentOutcome.assigned)
