"""Routing rules API routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.api.deps import get_company_id, get_db
from txrouter.schemas.routing_rule import RuleCreate, RuleResponse, RuleUpdate
from txrouter.services.rule_service import RuleService, rule_to_dict

router = APIRouter()


@router.get("", response_model=list[RuleResponse])
async def list_rules(
    active_only: bool = False,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """List routing rules in evaluation order."""
    service = RuleService(db)
    return [rule_to_dict(r) for r in await service.list_rules(company_id, active_only)]


@router.post("", response_model=RuleResponse, status_code=201)
async def create_rule(
    data: RuleCreate,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a routing rule. Invalid patterns and ranges are rejected with 422."""
    service = RuleService(db)
    return rule_to_dict(await service.create_rule(data, company_id))


@router.patch("/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: int,
    data: RuleUpdate,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Update an existing routing rule."""
    service = RuleService(db)
    return rule_to_dict(await service.update_rule(rule_id, data, company_id))


@router.post("/{rule_id}/deactivate", response_model=RuleResponse)
async def deactivate_rule(
    rule_id: int,
    company_id: int = Depends(get_company_id),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a rule. Rules are never deleted; history refers to them."""
    service = RuleService(db)
    return rule_to_dict(await service.deactivate_rule(rule_id, company_id))
