"""Confidence scoring fallback.

When no routing rule fires, the transaction text (memo, counterparty,
description) is compared with every candidate project's name and code:

    score = round(100 * (w * best + (1 - w) * coverage))

``best`` is the highest token similarity (SequenceMatcher ratio, 1.0 for an
identical token) and ``coverage`` the share of project-name tokens found in
the transaction. Text holding every token of the project code scores 100.
Both terms only grow with token overlap, so more overlap never lowers a score.
"""

import re
from dataclasses import dataclass
from difflib import SequenceMatcher

from txrouter.config import settings
from txrouter.services.project_directory import ProjectRef

_TOKEN_RE = re.compile(r"[a-z0-9]+")

# Legal-form and filler words carry no project identity
NOISE_TOKENS = frozenset({"co", "inc", "llc", "ltd", "corp", "company", "the", "and", "of", "for"})


@dataclass(frozen=True)
class Suggestion:
    project_id: int
    score: int


def tokenize(text: str | None) -> list[str]:
    return _TOKEN_RE.findall((text or "").lower())


def transaction_tokens(txn) -> set[str]:
    tokens: set[str] = set()
    for text in (txn.memo, txn.counterparty_name, txn.description):
        tokens.update(tokenize(text))
    return tokens


def project_tokens(project: ProjectRef) -> set[str]:
    tokens = {t for t in tokenize(project.name) if t not in NOISE_TOKENS}
    # A name made only of noise words still needs something to compare against
    return tokens or set(tokenize(project.name))


def _token_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


class ConfidenceScorer:
    def __init__(self, threshold: int | None = None, best_token_weight: float | None = None):
        self.threshold = settings.routing_confidence_threshold if threshold is None else threshold
        self.best_token_weight = (
            settings.routing_best_token_weight if best_token_weight is None else best_token_weight
        )
        if not 0.0 <= self.best_token_weight <= 1.0:
            raise ValueError("best_token_weight must be between 0 and 1")

    def similarity(self, tokens: set[str], project: ProjectRef) -> int:
        """Score one project against a set of transaction tokens (0-100)."""
        if not tokens:
            return 0
        code_tokens = set(tokenize(project.code))
        if code_tokens and code_tokens <= tokens:
            return 100

        name_tokens = project_tokens(project)
        if not name_tokens:
            return 0
        best = max(_token_similarity(t, p) for t in tokens for p in name_tokens)
        coverage = len(tokens & name_tokens) / len(name_tokens)
        w = self.best_token_weight
        return max(0, min(100, round(100 * (w * best + (1 - w) * coverage))))

    def rank(self, txn, candidates: list[ProjectRef]) -> list[Suggestion]:
        """All candidates by descending score, lowest project id first on ties."""
        tokens = transaction_tokens(txn)
        scored = [Suggestion(project_id=p.id, score=self.similarity(tokens, p)) for p in candidates]
        return sorted(scored, key=lambda s: (-s.score, s.project_id))

    def score(self, txn, candidates: list[ProjectRef]) -> Suggestion | None:
        """Best candidate if it clears the threshold, else None."""
        ranked = self.rank(txn, candidates)
        if ranked and ranked[0].score >= self.threshold:
            return ranked[0]
        return None
