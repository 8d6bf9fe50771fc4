"""Closed value sets shared by models, schemas and the routing engine."""

from enum import Enum

from sqlalchemy import Enum as SAEnum


class TransactionType(str, Enum):
    expense = "expense"
    invoice = "invoice"
    payment = "payment"
    check = "check"


class TransactionStatus(str, Enum):
    unrouted = "unrouted"
    suggested = "suggested"
    routed = "routed"


class FieldType(str, Enum):
    memo = "memo"
    reference = "reference"
    customer_name = "customer_name"
    item_name = "item_name"
    amount_range = "amount_range"
    custom_field = "custom_field"


class MatchType(str, Enum):
    exact = "exact"
    contains = "contains"
    starts_with = "starts_with"
    ends_with = "ends_with"
    regex = "regex"
    range = "range"


class RoutingOutcome(str, Enum):
    routed = "routed"
    suggested = "suggested"
    unresolved = "unresolved"
    no_match = "no_match"
    manually_assigned = "manually_assigned"
    suggestion_accepted = "suggestion_accepted"
    reset = "reset"
    conflict = "conflict"


class AssignmentOutcome(str, Enum):
    assigned = "assigned"
    skipped_already_routed = "skipped_already_routed"
    skipped_not_found = "skipped_not_found"
    skipped_conflict = "skipped_conflict"
    skipped_error = "skipped_error"


class RunStatus(str, Enum):
    running = "running"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


AUTO_DETECT = "auto-detect"


def enum_column(enum_cls: type[Enum]):
    """Portable string-backed column type storing enum values."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        values_callable=lambda e: [m.value for m in e],
        length=32,
        validate_strings=True,
    )
