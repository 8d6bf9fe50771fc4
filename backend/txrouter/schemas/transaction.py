"""Transaction schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from txrouter.models.enums import AssignmentOutcome, RoutingOutcome, TransactionStatus, TransactionType


class TransactionIngest(BaseModel):
    """One record from the accounting feed."""
    external_id: str = Field(min_length=1, max_length=100)
    type: TransactionType
    description: str | None = None
    amount: Decimal
    counterparty_name: str | None = None
    memo: str | None = None
    reference_number: str | None = None
    transaction_date: date
    line_items: list[str] | None = None
    custom_fields: dict[str, str] | None = None


class IngestRequest(BaseModel):
    transactions: list[TransactionIngest]


class IngestResult(BaseModel):
    received: int
    created: int
    existing: int


class TransactionResponse(BaseModel):
    id: int
    company_id: int
    external_id: str
    type: TransactionType
    description: str | None = None
    amount: Decimal
    counterparty_name: str | None = None
    memo: str | None = None
    reference_number: str | None = None
    transaction_date: date
    status: TransactionStatus
    assigned_project_id: int | None = None
    suggested_project_id: int | None = None
    confidence_score: int | None = None
    matched_rule_id: int | None = None
    needs_review: bool
    routing_note: str | None = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginatedResponse(BaseModel):
    data: list[TransactionResponse]
    meta: dict  # {total, page, per_page, pages}


class AssignRequest(BaseModel):
    transaction_ids: list[int] = Field(min_length=1)
    project_id: int


class AssignmentResult(BaseModel):
    transaction_id: int
    outcome: AssignmentOutcome
    reason: str | None = None

    @property
    def assigned(self) -> bool:
        return self.outcome == AssignmentOutcome.assigned


class AssignResponse(BaseModel):
    results: list[AssignmentResult]
    assigned_count: int
    skipped_count: int


class RoutingDecisionResponse(BaseModel):
    transaction_id: int
    outcome: RoutingOutcome
    project_id: int | None = None
    confidence: int | None = None
    rule_id: int | None = None
    detail: str | None = None
    rule_errors: int = 0


class RoutingEventResponse(BaseModel):
    id: int
    transaction_id: int
    run_id: int | None = None
    outcome: RoutingOutcome
    rule_id: int | None = None
    project_id: int | None = None
    confidence: int | None = None
    detail: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
