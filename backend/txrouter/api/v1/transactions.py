"""Transaction routing API routes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.api.deps import get_company_id, get_db
from txrouter.models.enums import TransactionStatus
from txrouter.schemas.transaction import (
    AssignRequest,
    AssignResponse,
    IngestRequest,
    IngestResult,
    PaginatedResponse,
    RoutingDecisionResponse,
    RoutingEventResponse,
    TransactionResponse,
)
from txrouter.services.assignment_service import AssignmentService
from txrouter.services.transaction_service import TransactionService

router = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_transactions(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    status: TransactionStatus | None = None,
    needs_review: bool | None = None,
    min_confidence: int | None = Query(None, ge=0, le=100),
    search: str | None = None,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """List transactions with pagination and filters."""
    service = TransactionService(db)
    return await service.list_transactions(
        company_id,
        page=page,
        per_page=per_page,
        status=status,
        needs_review=needs_review,
        min_confidence=min_confidence,
        search=search,
    )


@router.get("/unrouted", response_model=PaginatedResponse)
async def get_unrouted(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """List unrouted transactions, oldest first."""
    service = TransactionService(db)
    return await service.get_unrouted(company_id, page=page, per_page=per_page)


@router.post("/import", response_model=IngestResult)
async def import_transactions(
    data: IngestRequest,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Store accounting feed records. Known external ids are skipped."""
    service = TransactionService(db)
    return await service.ingest(company_id, data.transactions)


@router.post("/assign", response_model=AssignResponse)
async def assign_transactions(
    data: AssignRequest,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Assign transactions to a project. Reports an outcome per transaction."""
    service = AssignmentService(db)
    results = await service.assign(company_id, data.transaction_ids, data.project_id)
    assigned = sum(1 for r in results if r.assigned)
    return AssignResponse(results=results, assigned_count=assigned, skipped_count=len(results) - assigned)


@router.post("/{transaction_id}/route", response_model=RoutingDecisionResponse)
async def route_transaction(
    transaction_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Run the routing rules and confidence fallback on one transaction."""
    service = TransactionService(db)
    decision = await service.route_one(company_id, transaction_id)
    return RoutingDecisionResponse(
        transaction_id=transaction_id,
        outcome=decision.outcome,
        project_id=decision.project_id,
        confidence=decision.confidence,
        rule_id=decision.rule_id,
        detail=decision.detail,
        rule_errors=len(decision.faults),
    )


@router.post("/{transaction_id}/reset", response_model=TransactionResponse)
async def reset_transaction(
    transaction_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Put a transaction back to unrouted."""
    service = TransactionService(db)
    return await service.reset(company_id, transaction_id)


@router.post("/{transaction_id}/accept-suggestion", response_model=TransactionResponse)
async def accept_suggestion(
    transaction_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Route a suggested transaction to its suggested project."""
    service = TransactionService(db)
    return await service.accept_suggestion(company_id, transaction_id)


@router.get("/{transaction_id}/history", response_model=list[RoutingEventResponse])
async def get_history(
    transaction_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Routing events recorded for a transaction."""
    service = TransactionService(db)
    return await service.history(company_id, transaction_id)
