"""Rule compilation and matching.

A rule is validated and compiled once (regex compiled, range parsed, contains
tokens split) and cached by (rule id, revision). Matching a compiled rule
against a transaction is a pure predicate; only auto-detect resolution touches
the project directory, and that lookup is bounded by a timeout.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import structlog

from txrouter.config import settings
from txrouter.core.exceptions import EngineError, ProjectLookupError, RuleValidationError
from txrouter.models.enums import FieldType, MatchType

logger = structlog.get_logger()

PROJECT_CODE_GROUP = "project_code"

# JS/PCRE named group "(?<name>" -> Python "(?P<name>", lookbehinds untouched
_NAMED_GROUP_RE = re.compile(r"\(\?<(?![=!])")
_RANGE_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$")


class ProjectResolver(Protocol):
    async def lookup(self, code_or_name: str) -> int | None: ...


@dataclass(frozen=True)
class CompiledRule:
    id: int | None
    revision: int
    name: str
    field_type: FieldType
    match_type: MatchType
    priority: int
    created_at: datetime | None
    target_project_id: int | None
    field_name: str | None = None
    case_sensitive: bool = False
    exclude_patterns: tuple[str, ...] = ()
    value: str = ""
    tokens: tuple[str, ...] = ()
    pattern: re.Pattern | None = None
    bounds: tuple[Decimal, Decimal] | None = None

    @property
    def is_auto_detect(self) -> bool:
        return self.target_project_id is None

    @property
    def sort_key(self) -> tuple:
        created = self.created_at.timestamp() if self.created_at else 0.0
        return (self.priority, created, self.id or 0)


@dataclass
class MatchResult:
    rule_id: int | None
    matched: bool
    resolved_project_id: int | None = None
    detected_text: str | None = None
    lookup_error: ProjectLookupError | None = None

    @property
    def unresolved(self) -> bool:
        return self.matched and self.resolved_project_id is None


# ── Validation / compilation ───────────────────────


def parse_range(value: str) -> tuple[Decimal, Decimal]:
    """Parse "min-max" into inclusive decimal bounds."""
    m = _RANGE_RE.match(value or "")
    if not m:
        raise RuleValidationError(f"range must look like 'min-max', got {value!r}")
    try:
        low, high = Decimal(m.group(1)), Decimal(m.group(2))
    except InvalidOperation as e:
        raise RuleValidationError(f"range bounds are not numeric: {value!r}") from e
    if low > high:
        raise RuleValidationError(f"range minimum {low} is greater than maximum {high}")
    return low, high


def compile_pattern(value: str, case_sensitive: bool = False) -> re.Pattern:
    source = _NAMED_GROUP_RE.sub("(?P<", value or "")
    if not source:
        raise RuleValidationError("regex pattern must not be empty")
    try:
        return re.compile(source, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise RuleValidationError(f"invalid regex {value!r}: {e}") from e


def split_tokens(value: str) -> tuple[str, ...]:
    return tuple(t.strip() for t in (value or "").split(",") if t.strip())


def validate_rule_definition(
    field_type: FieldType,
    match_type: MatchType,
    match_value: str,
    *,
    field_name: str | None = None,
    auto_detect: bool = False,
    case_sensitive: bool = False,
) -> dict[str, Any]:
    """Check a rule definition and return its compiled match artefacts.

    Raises RuleValidationError for any definition the engine could not evaluate.
    """
    field_type = FieldType(field_type)
    match_type = MatchType(match_type)

    if (field_type == FieldType.amount_range) != (match_type == MatchType.range):
        raise RuleValidationError("'range' matching is only valid on the 'amount_range' field, and vice versa")
    if field_type == FieldType.custom_field and not (field_name or "").strip():
        raise RuleValidationError("custom_field rules need a field_name")

    if match_type == MatchType.range:
        if auto_detect:
            raise RuleValidationError("range rules cannot auto-detect a project; set a target project")
        return {"bounds": parse_range(match_value)}

    if match_type == MatchType.regex:
        return {"pattern": compile_pattern(match_value, case_sensitive)}

    if not (match_value or "").strip():
        raise RuleValidationError(f"{match_type.value} rules need a non-empty match_value")
    if match_type == MatchType.contains:
        tokens = split_tokens(match_value)
        if not tokens:
            raise RuleValidationError("contains rules need at least one non-empty token")
        return {"tokens": tokens}
    return {"value": match_value.strip()}


def compile_rule(rule) -> CompiledRule:
    """Compile a RoutingRule row (or any object with the same attributes)."""
    artefacts = validate_rule_definition(
        rule.field_type,
        rule.match_type,
        rule.match_value,
        field_name=rule.field_name,
        auto_detect=rule.target_project_id is None,
        case_sensitive=bool(rule.case_sensitive),
    )
    return CompiledRule(
        id=rule.id,
        revision=rule.revision or 1,
        name=rule.name,
        field_type=FieldType(rule.field_type),
        match_type=MatchType(rule.match_type),
        priority=rule.priority or 0,
        created_at=rule.created_at,
        target_project_id=rule.target_project_id,
        field_name=rule.field_name,
        case_sensitive=bool(rule.case_sensitive),
        exclude_patterns=tuple(p for p in (rule.exclude_patterns or []) if p),
        **artefacts,
    )


class RuleCache:
    """Compiled rules keyed by (rule id, revision)."""

    def __init__(self):
        self._compiled: dict[int, CompiledRule] = {}

    def get(self, rule) -> CompiledRule:
        if rule.id is None:
            return compile_rule(rule)
        cached = self._compiled.get(rule.id)
        if cached is None or cached.revision != (rule.revision or 1):
            cached = compile_rule(rule)
            self._compiled[rule.id] = cached
        return cached

    def compile_all(self, rules) -> list[CompiledRule]:
        return sorted((self.get(r) for r in rules), key=lambda c: c.sort_key)

    def discard(self, rule_id: int) -> None:
        self._compiled.pop(rule_id, None)

    def clear(self) -> None:
        self._compiled.clear()

    def __len__(self) -> int:
        return len(self._compiled)


rule_cache = RuleCache()


# ── Matching ───────────────────────────────────────


def extract_field(rule: CompiledRule, txn) -> str | Decimal | None:
    """Return the transaction value a rule looks at."""
    ft = rule.field_type
    if ft == FieldType.memo:
        return txn.memo
    if ft == FieldType.reference:
        return txn.reference_number
    if ft == FieldType.customer_name:
        return txn.counterparty_name
    if ft == FieldType.item_name:
        items = [str(i) for i in (txn.line_items or []) if i]
        return "\n".join(items) if items else txn.description
    if ft == FieldType.amount_range:
        return txn.amount
    if ft == FieldType.custom_field:
        value = (txn.custom_fields or {}).get(rule.field_name)
        return None if value is None else str(value)
    return None


def _fold(text: str, case_sensitive: bool) -> str:
    return text if case_sensitive else text.casefold()


def _match_text(rule: CompiledRule, text: str) -> tuple[bool, str | None]:
    mt = rule.match_type
    if mt == MatchType.regex:
        m = rule.pattern.search(text[: settings.routing_max_field_length])
        if not m:
            return False, None
        if PROJECT_CODE_GROUP in rule.pattern.groupindex and m.group(PROJECT_CODE_GROUP) is not None:
            return True, m.group(PROJECT_CODE_GROUP)
        return True, m.group(0)

    subject = _fold(text.strip(), rule.case_sensitive)
    if mt == MatchType.contains:
        for token in rule.tokens:
            if _fold(token, rule.case_sensitive) in subject:
                return True, token
        return False, None

    value = _fold(rule.value, rule.case_sensitive)
    if mt == MatchType.exact:
        hit = subject == value
    elif mt == MatchType.starts_with:
        hit = subject.startswith(value)
    elif mt == MatchType.ends_with:
        hit = subject.endswith(value)
    else:
        hit = False
    if not hit:
        return False, None
    # For exact matches the field text itself names the project
    return True, text.strip() if mt == MatchType.exact else rule.value


def _is_excluded(rule: CompiledRule, text: str, txn) -> bool:
    haystacks = [text.casefold(), (txn.description or "").casefold()]
    for pattern in rule.exclude_patterns:
        needle = pattern.casefold()
        if any(needle in h for h in haystacks):
            return True
    return False


def evaluate_rule(rule: CompiledRule, txn) -> tuple[bool, str | None]:
    """Pure predicate: does the rule fire, and on which text.

    Any unexpected failure is raised as EngineError so the caller can skip
    this rule for this transaction only.
    """
    try:
        value = extract_field(rule, txn)
        if value is None:
            return False, None

        if rule.match_type == MatchType.range:
            amount = value if isinstance(value, Decimal) else Decimal(str(value))
            low, high = rule.bounds
            return low <= amount <= high, None

        text = str(value)
        hit, detected = _match_text(rule, text)
        if hit and rule.exclude_patterns and _is_excluded(rule, text, txn):
            return False, None
        return hit, detected
    except Exception as e:
        raise EngineError(rule.id, getattr(txn, "id", None), e) from e


class RuleMatcher:
    """Matches compiled rules and resolves auto-detect targets."""

    def __init__(self, resolver: ProjectResolver, lookup_timeout: float | None = None):
        self.resolver = resolver
        self.lookup_timeout = settings.routing_lookup_timeout if lookup_timeout is None else lookup_timeout

    async def match(self, rule: CompiledRule, txn) -> MatchResult:
        matched, detected = evaluate_rule(rule, txn)
        if not matched:
            return MatchResult(rule_id=rule.id, matched=False)

        if not rule.is_auto_detect:
            return MatchResult(
                rule_id=rule.id,
                matched=True,
                resolved_project_id=rule.target_project_id,
                detected_text=detected,
            )

        try:
            project_id = await self.resolve(detected)
        except ProjectLookupError as e:
            return MatchResult(rule_id=rule.id, matched=True, detected_text=detected, lookup_error=e)
        return MatchResult(
            rule_id=rule.id,
            matched=True,
            resolved_project_id=project_id,
            detected_text=detected,
        )

    async def resolve(self, text: str | None) -> int:
        """Look the detected text up in the project directory, bounded by the timeout."""
        if not text or not text.strip():
            raise ProjectLookupError(text, "empty")
        try:
            project_id = await asyncio.wait_for(self.resolver.lookup(text.strip()), self.lookup_timeout)
        except asyncio.TimeoutError as e:
            raise ProjectLookupError(text, "timeout") from e
        except Exception as e:
            logger.warning("project_lookup_failed", detected_text=text, error=repr(e))
            raise ProjectLookupError(text, "error") from e
        if project_id is None:
            raise ProjectLookupError(text, "not_found")
        return project_id
