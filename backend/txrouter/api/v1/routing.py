"""Auto-routing run API routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.api.deps import get_company_id, get_db
from txrouter.core.exceptions import ConflictError, RunInProgressError
from txrouter.schemas.routing_run import RunSummary
from txrouter.services.batch_service import BatchService, run_to_summary

router = APIRouter()


@router.post("/runs", response_model=RunSummary)
async def run_auto_routing(
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Route all unrouted transactions of the company in one pass."""
    service = BatchService(db)
    try:
        run = await service.run_auto_routing(company_id)
    except RunInProgressError as e:
        raise ConflictError(str(e)) from e
    return run_to_summary(run)


@router.get("/runs/{run_id}", response_model=RunSummary)
async def get_run(
    run_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Get the summary of a run."""
    service = BatchService(db)
    return run_to_summary(await service.get_run(company_id, run_id))


@router.post("/runs/{run_id}/cancel", response_model=RunSummary)
async def cancel_run(
    run_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Stop an active run before its next write. Writes already made stay."""
    service = BatchService(db)
    return run_to_summary(await service.cancel_run(company_id, run_id))
