"""Confidence scorer tests."""

import pytest

from factories import make_transaction
from txrouter.services.confidence_scorer import ConfidenceScorer, project_tokens, transaction_tokens
from txrouter.services.project_directory import ProjectRef

LUMBER = ProjectRef(id=2, name="Lumber Co Renovation", code="456")
KITCHEN = ProjectRef(id=1, name="Kitchen Remodel", code="123")


def test_lumber_purchase_scores_72():
    scorer = ConfidenceScorer(threshold=70, best_token_weight=0.44)
    suggestion = scorer.score(make_transaction(memo="Lumber purchase"), [KITCHEN, LUMBER])
    assert suggestion is not None
    assert suggestion.project_id == 2
    assert suggestion.score == 72


def test_below_threshold_gives_no_suggestion():
    scorer = ConfidenceScorer(threshold=70)
    assert scorer.score(make_transaction(memo="Office supplies"), [KITCHEN, LUMBER]) is None


def test_threshold_is_configurable():
    scorer = ConfidenceScorer(threshold=80, best_token_weight=0.44)
    assert scorer.score(make_transaction(memo="Lumber purchase"), [LUMBER]) is None


def test_project_code_token_scores_100():
    scorer = ConfidenceScorer()
    ranked = scorer.rank(make_transaction(memo="Invoice 456 materials"), [KITCHEN, LUMBER])
    assert ranked[0].project_id == 2
    assert ranked[0].score == 100


def test_counterparty_and_description_count_as_text():
    txn = make_transaction(memo=None, counterparty_name="Kitchen Depot", description="remodel tiles")
    assert {"kitchen", "depot", "remodel", "tiles"} <= transaction_tokens(txn)
    assert ConfidenceScorer().score(txn, [KITCHEN, LUMBER]).project_id == 1


def test_noise_words_are_ignored_in_project_names():
    assert project_tokens(LUMBER) == {"lumber", "renovation"}
    assert project_tokens(ProjectRef(id=3, name="The Company")) == {"the", "company"}


def test_more_overlap_never_lowers_the_score():
    scorer = ConfidenceScorer()
    texts = ["lumbar", "lumber", "lumber renovation", "lumber renovation phase two"]
    scores = [scorer.similarity(transaction_tokens(make_transaction(memo=t)), LUMBER) for t in texts]
    assert scores == sorted(scores)
    assert scores[-1] == 100


def test_ties_go_to_lowest_project_id():
    twin_a = ProjectRef(id=9, name="Harbor Deck")
    twin_b = ProjectRef(id=4, name="Harbor Deck")
    suggestion = ConfidenceScorer().score(make_transaction(memo="harbor deck"), [twin_a, twin_b])
    assert suggestion.project_id == 4


def test_empty_text_scores_zero():
    scorer = ConfidenceScorer()
    assert scorer.similarity(set(), LUMBER) == 0
    assert scorer.score(make_transaction(), [LUMBER]) is None


def test_no_candidates():
    assert ConfidenceScorer().score(make_transaction(memo="Lumber purchase"), []) is None


def test_weight_must_be_a_share():
    with pytest.raises(ValueError):
        ConfidenceScorer(best_token_weight=1.5)


def test_punctuated_project_code_scores_100():
    project = ProjectRef(id=5, name="Harbor Deck", code="PROJ-123")
    scorer = ConfidenceScorer()
    assert scorer.similarity(transaction_tokens(make_transaction(memo="Materials for proj-123")), project) == 100
    assert scorer.similarity(transaction_tokens(make_transaction(memo="Materials for 123")), project) < 100
