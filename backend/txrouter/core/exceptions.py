"""Custom exception classes for the application.

HTTP errors are raised by services at the API seam. Routing errors are raised
and handled inside the engine and never leave a batch run or a bulk assignment.
"""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflicting request"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


# ── Routing errors ─────────────────────────────────


class RoutingError(Exception):
    """Base class for routing engine errors."""


class RuleValidationError(RoutingError):
    """A rule definition cannot be compiled for its match type."""


class ProjectLookupError(RoutingError, LookupError):
    """Auto-detected text did not resolve to a project."""

    def __init__(self, text: str | None, reason: str = "not_found"):
        self.text = text
        self.reason = reason
        super().__init__(f"no project for {text!r} ({reason})")


class ConcurrencyConflict(RoutingError):
    """A transaction changed between snapshot and write."""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"transaction {transaction_id} changed concurrently")


class EngineError(RoutingError):
    """Evaluating one rule against one transaction failed unexpectedly."""

    def __init__(self, rule_id: int | None, transaction_id: int | None, cause: Exception):
        self.rule_id = rule_id
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(f"rule {rule_id} failed on transaction {transaction_id}: {cause!r}")


class RunInProgressError(RoutingError):
    """A batch run is already active for the company."""

    def __init__(self, company_id: int):
        self.company_id = company_id
        super().__init__(f"an auto-routing run is already active for company {company_id}")
