"""
Tests for the composite scorer.
"""

import pytest

from registry_resolver.constants import ARBITRATION_THRESHOLD
from registry_resolver.domain.models import Candidate
from registry_resolver.entity_resolution.scoring import (
    CompositeScorer,
    ScoredCandidate,
    ScoringWeights,
    evidence_tags,
)
from tests.conftest import make_entry


def candidate(identifier="C1", **signals) -> Candidate:
    return Candidate(entry=make_entry(identifier, f"Entry {identifier}"), **signals)


@pytest.fixture
def scorer():
    return CompositeScorer()


class TestCompositeScore:
    """Tests for CompositeScorer.score()."""

    def test_all_signals(self, scorer):
        c = candidate(cosine_sim=1.0, email_match=True, name_match=True)
        assert scorer.score(c) == pytest.approx(0.90)

    def test_weights(self, scorer):
        assert scorer.score(candidate(cosine_sim=0.5)) == pytest.approx(0.30)
        assert scorer.score(candidate(cosine_sim=0.5, email_match=True)) == pytest.approx(0.55)
        assert scorer.score(candidate(cosine_sim=0.5, domain_match=True)) == pytest.approx(0.40)
        assert scorer.score(candidate(cosine_sim=0.5, name_match=True)) == pytest.approx(0.35)

    def test_domain_ignored_with_email_match(self, scorer):
        with_both = candidate(cosine_sim=0.5, email_match=True, domain_match=True)
        email_only = candidate(cosine_sim=0.5, email_match=True)
        assert scorer.score(with_both) == pytest.approx(scorer.score(email_only))

    def test_lexical_only_baseline(self, scorer):
        c = candidate(email_match=True)
        assert scorer.effective_cosine(c) == 0.5
        assert scorer.score(c) == pytest.approx(0.55)

    def test_lexical_only_ceiling_below_arbitration(self, scorer):
        best = candidate(email_match=True, domain_match=True, name_match=True)
        assert scorer.score(best) == pytest.approx(0.60)
        assert scorer.score(best) < ARBITRATION_THRESHOLD

    def test_negative_cosine_clamped(self, scorer):
        assert scorer.score(candidate(cosine_sim=-0.4)) == 0.0

    def test_custom_weights(self):
        scorer = CompositeScorer(ScoringWeights(cosine=1.0, email=0.0, domain=0.0, name=0.0))
        assert scorer.score(candidate(cosine_sim=0.7, email_match=True)) == pytest.approx(0.7)

    @pytest.mark.parametrize("signal", ["email_match", "domain_match", "name_match"])
    def test_adding_a_signal_never_lowers_score(self, scorer, signal):
        base = candidate(cosine_sim=0.6)
        boosted = candidate(cosine_sim=0.6, **{signal: True})
        assert scorer.score(boosted) > scorer.score(base)

    def test_higher_cosine_never_lowers_score(self, scorer):
        scores = [scorer.score(candidate(cosine_sim=c, name_match=True)) for c in (0.1, 0.4, 0.8, 1.0)]
        assert scores == sorted(scores)


class TestRank:
    """Tests for CompositeScorer.rank()."""

    def test_sorted_by_score(self, scorer):
        ranked = scorer.rank(
            [
                candidate("C1", cosine_sim=0.2),
                candidate("C2", cosine_sim=0.9),
                candidate("C3", cosine_sim=0.5, email_match=True),
            ]
        )
        assert [s.identifier for s in ranked] == ["C3", "C2", "C1"]

    def test_ties_broken_by_identifier(self, scorer):
        ranked = scorer.rank([candidate("C9", cosine_sim=0.5), candidate("C2", cosine_sim=0.5)])
        assert [s.identifier for s in ranked] == ["C2", "C9"]

    def test_records_effective_cosine(self, scorer):
        ranked = scorer.rank([candidate("C1")])
        assert ranked[0].cosine == 0.5

    def test_empty(self, scorer):
        assert scorer.rank([]) == []


class TestEvidenceTags:
    """Tests for evidence_tags()."""

    def test_semantic_match(self):
        c = candidate(cosine_sim=0.95, email_match=True, name_match=True)
        tags = evidence_tags(ScoredCandidate(c, score=0.87, cosine=0.95))
        assert tags == ["exact_email_match", "name_match", "high_semantic_similarity", "high_composite_score"]

    def test_lexical_only(self):
        c = candidate(domain_match=True)
        tags = evidence_tags(ScoredCandidate(c, score=0.40, cosine=0.5))
        assert tags == ["domain_match", "lexical_only"]

    def test_alternative_score_rounded(self):
        alt = ScoredCandidate(candidate("C7"), score=0.123456, cosine=0.1).to_alternative()
        assert alt.identifier == "C7"
        assert alt.name == "Entry C7"
        assert alt.score == 0.1235
