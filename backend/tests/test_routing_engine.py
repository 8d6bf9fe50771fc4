"""Routing engine tests: first match wins, then the confidence fallback."""

from decimal import Decimal

import pytest

from factories import make_rule, make_transaction
from txrouter.models.enums import FieldType, MatchType, RoutingOutcome, TransactionStatus
from txrouter.services.confidence_scorer import ConfidenceScorer
from txrouter.services.project_directory import DirectorySnapshot, ProjectRef
from txrouter.services.routing_engine import RoutingEngine
from txrouter.services.rule_matcher import RuleCache


@pytest.fixture
def engine() -> RoutingEngine:
    directory = DirectorySnapshot([
        ProjectRef(id=1, name="Kitchen Remodel", code="123"),
        ProjectRef(id=2, name="Cabinet Install", code="200"),
        ProjectRef(id=3, name="Lumber Co Renovation", code="456"),
    ])
    return RoutingEngine(directory, scorer=ConfidenceScorer(threshold=70, best_token_weight=0.44))


def _compiled(*rules):
    return RuleCache().compile_all(rules)


@pytest.mark.asyncio
async def test_auto_detect_routes_by_project_code(engine):
    rules = _compiled(make_rule(match_type=MatchType.regex, match_value=r"PROJ-(?<project_code>\d{3})"))
    decision = await engine.decide(make_transaction(memo="Kitchen supplies PROJ-123"), rules)
    assert decision.outcome == RoutingOutcome.routed
    assert decision.project_id == 1
    assert decision.confidence == 100
    assert decision.target_status == TransactionStatus.routed


@pytest.mark.asyncio
async def test_lower_priority_number_wins(engine):
    rule_a = make_rule(id=1, match_value="kitchen", target_project_id=1, priority=1, created_offset=60)
    rule_b = make_rule(id=2, match_value="cabinet", target_project_id=2, priority=2, created_offset=0)
    decision = await engine.decide(make_transaction(memo="kitchen cabinet order"), _compiled(rule_b, rule_a))
    assert decision.project_id == 1
    assert decision.rule_id == 1


@pytest.mark.asyncio
async def test_equal_priority_goes_to_oldest_rule(engine):
    newer = make_rule(id=1, match_value="kitchen", target_project_id=1, created_offset=30)
    older = make_rule(id=2, match_value="cabinet", target_project_id=2, created_offset=0)
    txn = make_transaction(memo="kitchen cabinet order")
    for rules in (_compiled(newer, older), _compiled(older, newer)):
        decision = await engine.decide(txn, rules)
        assert decision.rule_id == 2
        assert decision.project_id == 2


@pytest.mark.asyncio
async def test_unresolved_auto_detect_stops_evaluation(engine):
    auto = make_rule(id=1, match_type=MatchType.regex, match_value=r"PROJ-(?<project_code>\d{3})", priority=1)
    fallback = make_rule(id=2, match_value="kitchen", target_project_id=1, priority=2)
    decision = await engine.decide(make_transaction(memo="Kitchen supplies PROJ-999"), _compiled(auto, fallback))
    assert decision.outcome == RoutingOutcome.unresolved
    assert decision.rule_id == 1
    assert decision.project_id is None
    assert decision.target_status is None
    assert "999" in decision.detail


@pytest.mark.asyncio
async def test_failing_rule_is_skipped(engine):
    broken = make_rule(
        id=1,
        field_type=FieldType.amount_range,
        match_type=MatchType.range,
        match_value="1-10",
        target_project_id=2,
        priority=1,
    )
    working = make_rule(id=2, match_value="kitchen", target_project_id=1, priority=2)
    decision = await engine.decide(make_transaction(memo="kitchen", amount="n/a"), _compiled(broken, working))
    assert decision.outcome == RoutingOutcome.routed
    assert decision.rule_id == 2
    assert len(decision.faults) == 1
    assert decision.faults[0].rule_id == 1


@pytest.mark.asyncio
async def test_fallback_suggestion_when_no_rule_fires(engine):
    rules = _compiled(make_rule(match_value="drywall", target_project_id=1))
    decision = await engine.decide(make_transaction(memo="Lumber purchase"), rules)
    assert decision.outcome == RoutingOutcome.suggested
    assert decision.project_id == 3
    assert decision.confidence == 72
    assert decision.target_status == TransactionStatus.suggested


@pytest.mark.asyncio
async def test_no_match_leaves_transaction_untouched(engine):
    decision = await engine.decide(make_transaction(memo="Coffee"), [])
    assert decision.outcome == RoutingOutcome.no_match
    assert decision.project_id is None
    assert decision.target_status is None


@pytest.mark.asyncio
async def test_range_rule_routes_by_amount(engine):
    rules = _compiled(make_rule(
        field_type=FieldType.amount_range,
        match_type=MatchType.range,
        match_value="1000-5000",
        target_project_id=3,
    ))
    decision = await engine.decide(make_transaction(memo="Coffee", amount=Decimal("1000.00")), rules)
    assert decision.outcome == RoutingOutcome.routed
    assert decision.project_id == 3


@pytest.mark.asyncio
async def test_decision_is_deterministic(engine):
    rules = _compiled(
        make_rule(id=1, match_value="cabinet", target_project_id=2, priority=3),
        make_rule(id=2, match_type=MatchType.regex, match_value=r"PROJ-(?<project_code>\d{3})", priority=1),
    )
    txn = make_transaction(memo="cabinet PROJ-123")
    decisions = [await engine.decide(txn, rules) for _ in range(5)]
    assert all(d == decisions[0] for d in decisions)
    assert decisions[0].project_id == 1


@pytest.mark.asyncio
async def test_directory_failure_leaves_transaction_unresolved():
    class FailingDirectory(DirectorySnapshot):
        async def lookup(self, code_or_name: str) -> int | None:
            raise RuntimeError("directory unavailable")

    engine = RoutingEngine(FailingDirectory([ProjectRef(id=1, name="Kitchen Remodel", code="123")]))
    rules = _compiled(make_rule(match_type=MatchType.regex, match_value=r"PROJ-(?<project_code>\d{3})"))
    decision = await engine.decide(make_transaction(memo="PROJ-123"), rules)
    assert decision.outcome == RoutingOutcome.unresolved
    assert "error" in decision.detail
