"""Routing decision for a single transaction.

Active rules are tried in their total order (priority, then creation time).
The first rule that fires decides: an explicit or resolved target routes the
transaction; an auto-detect rule whose lookup fails leaves it unrouted and
stops there, so a lower-priority rule cannot override it. Only when no rule
fires does the confidence scorer get a say.
"""

from dataclasses import dataclass, field

import structlog

from txrouter.core.exceptions import EngineError
from txrouter.models.enums import RoutingOutcome, TransactionStatus
from txrouter.services.confidence_scorer import ConfidenceScorer
from txrouter.services.rule_matcher import CompiledRule, RuleMatcher

logger = structlog.get_logger()

RULE_CONFIDENCE = 100


@dataclass
class RoutingDecision:
    transaction_id: int | None
    outcome: RoutingOutcome
    project_id: int | None = None
    confidence: int | None = None
    rule_id: int | None = None
    detail: str | None = None
    faults: list[EngineError] = field(default_factory=list)

    @property
    def target_status(self) -> TransactionStatus | None:
        """Status the transaction moves to, or None if it stays untouched."""
        if self.outcome == RoutingOutcome.routed:
            return TransactionStatus.routed
        if self.outcome == RoutingOutcome.suggested:
            return TransactionStatus.suggested
        return None


class RoutingEngine:
    def __init__(self, directory, scorer: ConfidenceScorer | None = None, lookup_timeout: float | None = None):
        self.directory = directory
        self.matcher = RuleMatcher(directory, lookup_timeout=lookup_timeout)
        self.scorer = scorer or ConfidenceScorer()

    async def decide(self, txn, rules: list[CompiledRule]) -> RoutingDecision:
        """Decide where one transaction goes. Never raises for a single bad rule."""
        faults: list[EngineError] = []

        for rule in rules:
            try:
                result = await self.matcher.match(rule, txn)
            except EngineError as e:
                faults.append(e)
                logger.warning(
                    "routing_rule_failed",
                    rule_id=rule.id,
                    transaction_id=txn.id,
                    error=repr(e.cause),
                )
                continue

            if not result.matched:
                continue

            if result.resolved_project_id is not None:
                return RoutingDecision(
                    transaction_id=txn.id,
                    outcome=RoutingOutcome.routed,
                    project_id=result.resolved_project_id,
                    confidence=RULE_CONFIDENCE,
                    rule_id=rule.id,
                    detail=f"matched rule {rule.name!r}",
                    faults=faults,
                )

            # Auto-detect fired but could not resolve: the rule keeps its claim
            reason = result.lookup_error.reason if result.lookup_error else "not_found"
            logger.warning(
                "routing_auto_detect_unresolved",
                rule_id=rule.id,
                transaction_id=txn.id,
                detected_text=result.detected_text,
                reason=reason,
            )
            return RoutingDecision(
                transaction_id=txn.id,
                outcome=RoutingOutcome.unresolved,
                rule_id=rule.id,
                detail=f"rule {rule.name!r} detected {result.detected_text!r} but no project matched ({reason})",
                faults=faults,
            )

        candidates = await self.directory.list_candidates()
        suggestion = self.scorer.score(txn, candidates)
        if suggestion is not None:
            return RoutingDecision(
                transaction_id=txn.id,
                outcome=RoutingOutcome.suggested,
                project_id=suggestion.project_id,
                confidence=suggestion.score,
                detail=f"similarity {suggestion.score}",
                faults=faults,
            )

        return RoutingDecision(transaction_id=txn.id, outcome=RoutingOutcome.no_match, faults=faults)
