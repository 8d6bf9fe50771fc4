"""Routing rule store.

Rules are validated (and compiled) at write time, so the engine never sees a
rule it cannot evaluate. Listing always returns the evaluation order:
priority ascending, then creation time, then id.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.core.exceptions import NotFoundError, RuleValidationError, ValidationError
from txrouter.models.enums import AUTO_DETECT
from txrouter.models.routing_rule import RoutingRule
from txrouter.schemas.routing_rule import RuleCreate, RuleUpdate
from txrouter.services.project_directory import ProjectDirectory
from txrouter.services.rule_matcher import CompiledRule, rule_cache, validate_rule_definition

logger = structlog.get_logger()

# Columns a patch may not null out
_REQUIRED_FIELDS = {
    "name", "field_type", "match_type", "match_value", "target_project_id",
    "priority", "is_active", "case_sensitive",
}


def _target_to_column(target) -> int | None:
    return None if target == AUTO_DETECT else target


def rule_to_dict(rule: RoutingRule) -> dict:
    return {
        "id": rule.id,
        "company_id": rule.company_id,
        "name": rule.name,
        "description": rule.description,
        "field_type": rule.field_type,
        "field_name": rule.field_name,
        "match_type": rule.match_type,
        "match_value": rule.match_value,
        "target_project_id": AUTO_DETECT if rule.target_project_id is None else rule.target_project_id,
        "priority": rule.priority,
        "is_active": rule.is_active,
        "case_sensitive": rule.case_sensitive,
        "exclude_patterns": rule.exclude_patterns,
        "matches_count": rule.matches_count,
        "last_matched_at": rule.last_matched_at,
        "revision": rule.revision,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }


class RuleService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── CRUD ───────────────────────────────────────────

    async def list_rules(self, company_id: int, active_only: bool = False) -> list[RoutingRule]:
        """Rules in evaluation order."""
        query = select(RoutingRule).where(RoutingRule.company_id == company_id)
        if active_only:
            query = query.where(RoutingRule.is_active.is_(True))
        query = query.order_by(RoutingRule.priority.asc(), RoutingRule.created_at.asc(), RoutingRule.id.asc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def active_compiled(self, company_id: int) -> list[CompiledRule]:
        """Active rules, compiled and sorted, ready for the engine."""
        return rule_cache.compile_all(await self.list_rules(company_id, active_only=True))

    async def create_rule(self, data: RuleCreate, company_id: int) -> RoutingRule:
        """Create a rule after checking it compiles and its target exists."""
        target = _target_to_column(data.target_project_id)
        await self._validate(
            company_id,
            field_type=data.field_type,
            match_type=data.match_type,
            match_value=data.match_value,
            field_name=data.field_name,
            target_project_id=target,
            case_sensitive=data.case_sensitive,
        )

        rule = RoutingRule(
            company_id=company_id,
            name=data.name,
            description=data.description,
            field_type=data.field_type,
            field_name=data.field_name,
            match_type=data.match_type,
            match_value=data.match_value,
            target_project_id=target,
            priority=data.priority,
            is_active=data.is_active,
            case_sensitive=data.case_sensitive,
            exclude_patterns=data.exclude_patterns,
            matches_count=0,
            revision=1,
        )
        self.db.add(rule)
        await self.db.flush()
        await self.db.refresh(rule)

        logger.info("routing_rule_created", company_id=company_id, rule_id=rule.id, priority=rule.priority)
        return rule

    async def update_rule(self, rule_id: int, data: RuleUpdate, company_id: int) -> RoutingRule:
        """Patch a rule. The merged definition is re-validated before saving."""
        rule = await self.get_rule(rule_id, company_id)
        patch = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key not in _REQUIRED_FIELDS
        }
        if "target_project_id" in patch:
            patch["target_project_id"] = _target_to_column(patch["target_project_id"])

        merged = {
            "field_type": patch.get("field_type", rule.field_type),
            "match_type": patch.get("match_type", rule.match_type),
            "match_value": patch.get("match_value", rule.match_value),
            "field_name": patch.get("field_name", rule.field_name),
            "target_project_id": patch.get("target_project_id", rule.target_project_id),
            "case_sensitive": patch.get("case_sensitive", rule.case_sensitive),
        }
        await self._validate(company_id, **merged)

        for key, value in patch.items():
            setattr(rule, key, value)
        rule.revision = (rule.revision or 1) + 1
        await self.db.flush()
        await self.db.refresh(rule)
        rule_cache.discard(rule.id)

        logger.info("routing_rule_updated", company_id=company_id, rule_id=rule.id, fields=sorted(patch))
        return rule

    async def deactivate_rule(self, rule_id: int, company_id: int) -> RoutingRule:
        rule = await self.get_rule(rule_id, company_id)
        if rule.is_active:
            rule.is_active = False
            rule.revision = (rule.revision or 1) + 1
            await self.db.flush()
            await self.db.refresh(rule)
            rule_cache.discard(rule.id)
            logger.info("routing_rule_deactivated", company_id=company_id, rule_id=rule.id)
        return rule

    async def get_rule(self, rule_id: int, company_id: int) -> RoutingRule:
        result = await self.db.execute(
            select(RoutingRule).where(
                RoutingRule.id == rule_id,
                RoutingRule.company_id == company_id,
            )
        )
        rule = result.scalar_one_or_none()
        if not rule:
            raise NotFoundError("RoutingRule")
        return rule

    # ── Helpers ─────────────────────────────────────────

    async def _validate(
        self,
        company_id: int,
        *,
        field_type,
        match_type,
        match_value: str,
        field_name: str | None,
        target_project_id: int | None,
        case_sensitive: bool,
    ) -> None:
        try:
            validate_rule_definition(
                field_type,
                match_type,
                match_value,
                field_name=field_name,
                auto_detect=target_project_id is None,
                case_sensitive=bool(case_sensitive),
            )
        except RuleValidationError as e:
            raise ValidationError(str(e)) from e

        if target_project_id is not None:
            directory = ProjectDirectory(self.db, company_id)
            if not await directory.exists(target_project_id):
                raise ValidationError(f"Target project {target_project_id} does not exist")
