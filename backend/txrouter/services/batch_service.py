"""Auto-routing runs over a company's unrouted transactions.

A run snapshots the unrouted set, the active rules and the project directory,
then evaluates transactions chunk by chunk. Evaluation inside a chunk runs
concurrently; writes are applied one by one, each committed on its own, with
the cancellation flag checked before every write. Committed writes stay when
a run is cancelled or fails.
"""

import asyncio
from datetime import timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.config import settings
from txrouter.core.exceptions import ConcurrencyConflict, ConflictError, NotFoundError, RunInProgressError
from txrouter.models.base import utcnow
from txrouter.models.enums import RoutingOutcome, RunStatus, TransactionStatus
from txrouter.models.routing_history import RoutingRun
from txrouter.models.transaction import Transaction
from txrouter.services.project_directory import ProjectDirectory
from txrouter.services.routing_engine import RoutingDecision, RoutingEngine
from txrouter.services.rule_service import RuleService
from txrouter.services.transaction_service import TransactionService

logger = structlog.get_logger()


class RunHandle:
    def __init__(self, company_id: int):
        self.company_id = company_id
        self.run_id: int | None = None
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


class RunRegistry:
    """Active runs in this process, at most one per company."""

    def __init__(self):
        self._active: dict[int, RunHandle] = {}

    def claim(self, company_id: int) -> RunHandle:
        if company_id in self._active:
            raise RunInProgressError(company_id)
        handle = RunHandle(company_id)
        self._active[company_id] = handle
        return handle

    def release(self, handle: RunHandle) -> None:
        if self._active.get(handle.company_id) is handle:
            del self._active[handle.company_id]

    def get(self, company_id: int) -> RunHandle | None:
        return self._active.get(company_id)


run_registry = RunRegistry()


def run_to_summary(run: RoutingRun) -> dict:
    return {
        "run_id": run.id,
        "status": run.status,
        "total": run.total,
        "routed": run.routed,
        "suggested": run.suggested,
        "unresolved": run.unresolved,
        "no_match": run.no_match,
        "conflicts": run.conflicts,
        "errors": run.errors,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
    }


class BatchService:
    def __init__(self, db: AsyncSession, registry: RunRegistry | None = None):
        self.db = db
        self.registry = registry or run_registry
        self.transactions = TransactionService(db)

    async def run_auto_routing(self, company_id: int) -> RoutingRun:
        """Route every currently unrouted transaction of the company.

        Raises RunInProgressError if a run is already active for the company;
        otherwise always returns the finished run with its counts.
        """
        handle = self.registry.claim(company_id)
        try:
            run = await self._open_run(company_id)
            handle.run_id = run.id
            try:
                await self._process(company_id, run, handle)
            except Exception:
                await self._mark_failed(run)
                raise
            return run
        finally:
            self.registry.release(handle)

    async def get_run(self, company_id: int, run_id: int) -> RoutingRun:
        result = await self.db.execute(
            select(RoutingRun).where(RoutingRun.id == run_id, RoutingRun.company_id == company_id)
        )
        run = result.scalar_one_or_none()
        if not run:
            raise NotFoundError("RoutingRun")
        return run

    async def cancel_run(self, company_id: int, run_id: int) -> RoutingRun:
        """Ask an active run to stop before its next write."""
        run = await self.get_run(company_id, run_id)
        handle = self.registry.get(company_id)
        if handle is None or handle.run_id != run_id:
            raise ConflictError("Run is not active in this process")
        handle.cancel()
        logger.info("auto_routing_cancel_requested", company_id=company_id, run_id=run_id)
        return run

    # ── Internals ──────────────────────────────────────

    async def _open_run(self, company_id: int) -> RoutingRun:
        await self._expire_stale_runs(company_id)
        run = RoutingRun(company_id=company_id, status=RunStatus.running, started_at=utcnow())
        self.db.add(run)
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # Another process holds the running slot for this company
            raise RunInProgressError(company_id) from e
        return run

    async def _mark_failed(self, run: RoutingRun) -> None:
        await self.db.rollback()
        await self.db.refresh(run)
        run.status = RunStatus.failed
        run.finished_at = utcnow()
        await self.db.commit()
        logger.error("auto_routing_aborted", company_id=run.company_id, run_id=run.id)

    async def _expire_stale_runs(self, company_id: int) -> None:
        cutoff = utcnow() - timedelta(seconds=settings.routing_run_stale_after)
        await self.db.execute(
            update(RoutingRun)
            .where(
                RoutingRun.company_id == company_id,
                RoutingRun.status == RunStatus.running,
                RoutingRun.started_at < cutoff,
            )
            .values(status=RunStatus.failed, finished_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def _decide(self, engine: RoutingEngine, txn: Transaction, rules) -> RoutingDecision | None:
        try:
            return await engine.decide(txn, rules)
        except Exception as e:
            logger.exception("auto_routing_evaluation_failed", transaction_id=txn.id, error=str(e))
            return None

    async def _process(self, company_id: int, run: RoutingRun, handle: RunHandle) -> None:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.company_id == company_id,
                Transaction.status == TransactionStatus.unrouted,
            )
            .order_by(Transaction.id)
        )
        snapshot = list(result.scalars().all())
        rules = await RuleService(self.db).active_compiled(company_id)
        directory = await ProjectDirectory(self.db, company_id).snapshot()
        engine = RoutingEngine(directory)

        counts = {key: 0 for key in ("routed", "suggested", "unresolved", "no_match", "conflicts", "errors")}
        status = RunStatus.completed
        chunk_size = max(1, settings.routing_batch_chunk_size)

        logger.info(
            "auto_routing_started",
            company_id=company_id,
            run_id=run.id,
            transactions=len(snapshot),
            rules=len(rules),
        )

        for start in range(0, len(snapshot), chunk_size):
            if handle.cancelled:
                status = RunStatus.cancelled
                break
            chunk = snapshot[start:start + chunk_size]
            decisions = await asyncio.gather(*(self._decide(engine, txn, rules) for txn in chunk))

            for txn, decision in zip(chunk, decisions):
                if handle.cancelled:
                    status = RunStatus.cancelled
                    break
                if decision is None:
                    counts["errors"] += 1
                    continue
                if decision.faults:
                    counts["errors"] += 1
                try:
                    await self.transactions.apply_decision(company_id, txn, decision, run_id=run.id)
                    await self.db.commit()
                except ConcurrencyConflict:
                    counts["conflicts"] += 1
                    await self.transactions.audit.record(
                        company_id, txn.id, RoutingOutcome.conflict, run_id=run.id, detail="auto-routing run"
                    )
                    await self.db.commit()
                    continue
                except SQLAlchemyError as e:
                    logger.error("auto_routing_write_failed", run_id=run.id, transaction_id=txn.id, error=str(e))
                    await self.db.rollback()
                    await self.db.refresh(run)
                    counts["errors"] += 1
                    status = RunStatus.failed
                    break
                counts[decision.outcome.value] += 1
            if status != RunStatus.completed:
                break

        run.total = len(snapshot)
        for key, value in counts.items():
            setattr(run, key, value)
        run.status = status
        run.finished_at = utcnow()
        await self.db.flush()
        await self.db.commit()

        logger.info("auto_routing_finished", company_id=company_id, run_id=run.id, status=status.value, **counts)
