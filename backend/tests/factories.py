"""Builders for routing test data."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from txrouter.models import Project, RoutingRule, Transaction
from txrouter.models.enums import FieldType, MatchType, TransactionStatus, TransactionType

COMPANY_ID = 1
BASE_TIME = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_rule(
    id: int = 1,
    *,
    field_type: FieldType = FieldType.memo,
    match_type: MatchType = MatchType.contains,
    match_value: str = "kitchen",
    target_project_id: int | None = None,
    priority: int = 1,
    created_offset: int = 0,
    case_sensitive: bool = False,
    revision: int = 1,
    **extra,
) -> RoutingRule:
    """Transient rule row, never added to a session."""
    return RoutingRule(
        id=id,
        company_id=COMPANY_ID,
        name=f"rule {id}",
        field_type=field_type,
        match_type=match_type,
        match_value=match_value,
        target_project_id=target_project_id,
        priority=priority,
        is_active=True,
        case_sensitive=case_sensitive,
        revision=revision,
        created_at=BASE_TIME + timedelta(seconds=created_offset),
        **extra,
    )


def make_transaction(id: int = 1, **values) -> Transaction:
    values.setdefault("type", TransactionType.expense)
    values.setdefault("amount", Decimal("100.00"))
    values.setdefault("transaction_date", date(2026, 1, 15))
    return Transaction(id=id, company_id=COMPANY_ID, external_id=f"qb-{id}", **values)


async def add_project(db, name: str, code: str | None = None, company_id: int = COMPANY_ID) -> Project:
    project = Project(company_id=company_id, name=name, code=code, is_active=True)
    db.add(project)
    await db.flush()
    return project


async def add_transaction(
    db,
    external_id: str,
    memo: str | None = None,
    status: TransactionStatus = TransactionStatus.unrouted,
    company_id: int = COMPANY_ID,
    **values,
) -> Transaction:
    values.setdefault("type", TransactionType.expense)
    values.setdefault("amount", Decimal("250.00"))
    values.setdefault("transaction_date", date(2026, 1, 15))
    txn = Transaction(
        company_id=company_id,
        external_id=external_id,
        memo=memo,
        status=status,
        version=1,
        **values,
    )
    db.add(txn)
    await db.flush()
    return txn


async def add_rule(db, match_value: str, company_id: int = COMPANY_ID, **values) -> RoutingRule:
    values.setdefault("name", f"rule {match_value}")
    values.setdefault("field_type", FieldType.memo)
    values.setdefault("match_type", MatchType.contains)
    values.setdefault("priority", 1)
    rule = RoutingRule(
        company_id=company_id,
        match_value=match_value,
        is_active=True,
        case_sensitive=False,
        matches_count=0,
        revision=1,
        **values,
    )
    db.add(rule)
    await db.flush()
    return rule
