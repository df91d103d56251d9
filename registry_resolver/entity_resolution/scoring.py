"""
Composite Scoring Module.

Combines per-candidate signals into one explainable score:

    0.60 * cosine + 0.25 * email_match + 0.10 * domain_match + 0.05 * name_match

domain_match only counts without an exact email match. Candidates with no
embedding signal use a fixed neutral cosine so lexical-only matches are not
structurally punished.
"""

from __future__ import annotations

from dataclasses import dataclass

from registry_resolver.constants import (
    HIGH_COMPOSITE_SCORE,
    HIGH_SEMANTIC_SIMILARITY,
    LEXICAL_ONLY_COSINE_BASELINE,
    WEIGHT_COSINE,
    WEIGHT_DOMAIN_MATCH,
    WEIGHT_EMAIL_MATCH,
    WEIGHT_NAME_MATCH,
)
from registry_resolver.domain.models import Alternative, Candidate


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the composite score."""

    cosine: float = WEIGHT_COSINE
    email: float = WEIGHT_EMAIL_MATCH
    domain: float = WEIGHT_DOMAIN_MATCH
    name: float = WEIGHT_NAME_MATCH
    lexical_only_baseline: float = LEXICAL_ONLY_COSINE_BASELINE


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its composite score."""

    candidate: Candidate
    score: float
    cosine: float  # Cosine actually used (baseline for lexical-only candidates)

    @property
    def identifier(self) -> str:
        return self.candidate.identifier

    @property
    def name(self) -> str:
        return self.candidate.name

    def to_alternative(self) -> Alternative:
        return Alternative(identifier=self.identifier, name=self.name, score=round(self.score, 4))


class CompositeScorer:
    """Scores and ranks candidates with fixed weights."""

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()

    def effective_cosine(self, candidate: Candidate) -> float:
        if candidate.cosine_sim is None:
            return self.weights.lexical_only_baseline
        # Negative similarity carries no more information than none at all
        return min(max(candidate.cosine_sim, 0.0), 1.0)

    def score(self, candidate: Candidate) -> float:
        """Composite score of one candidate, in [0, 1]."""
        w = self.weights
        total = w.cosine * self.effective_cosine(candidate)
        if candidate.email_match:
            total += w.email
        elif candidate.domain_match:
            total += w.domain
        if candidate.name_match:
            total += w.name
        return total

    def rank(self, candidates: list[Candidate]) -> list[ScoredCandidate]:
        """Score candidates and sort them by descending score (identifier breaks ties)."""
        scored = [
            ScoredCandidate(candidate=c, score=self.score(c), cosine=self.effective_cosine(c))
            for c in candidates
        ]
        scored.sort(key=lambda s: (-s.score, s.identifier))
        return scored


def evidence_tags(scored: ScoredCandidate) -> list[str]:
    """Human-readable reasons supporting a selected candidate."""
    candidate = scored.candidate
    tags = []
    if candidate.email_match:
        tags.append("exact_email_match")
    if candidate.domain_match:
        tags.append("domain_match")
    if candidate.name_match:
        tags.append("name_match")
    if candidate.cosine_sim is not None and candidate.cosine_sim > HIGH_SEMANTIC_SIMILARITY:
        tags.append("high_semantic_similarity")
    if candidate.cosine_sim is None:
        tags.append("lexical_only")
    if scored.score > HIGH_COMPOSITE_SCORE:
        tags.append("high_composite_score")
    return tags
