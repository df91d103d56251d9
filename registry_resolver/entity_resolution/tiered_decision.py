"""
Decision Policy for Entity Resolution.

Applies confidence and margin thresholds to the ranked candidates:
1. Accept: top >= 0.85 and margin >= 0.03
2. Arbitrate: top >= 0.75 (not accepted) with at least 2 candidates,
   using the top 3 candidates
3. Low confidence: any candidate at all, accepted at reduced confidence
   and flagged for review
4. No match: no candidates

The expensive step (LLM arbitration) only runs in the ambiguous band.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from registry_resolver.constants import (
    ARBITRATED_CONFIDENCE,
    ARBITRATION_MAX_CANDIDATES,
    ARBITRATION_THRESHOLD,
    AUTO_ACCEPT_MIN_MARGIN,
    AUTO_ACCEPT_THRESHOLD,
    LOW_CONFIDENCE_FLOOR,
)
from registry_resolver.entity_resolution.scoring import ScoredCandidate

logger = logging.getLogger(__name__)

# Guards threshold comparisons against float noise (0.1 + 0.2 style sums)
SCORE_EPSILON = 1e-9


class Decision(Enum):
    """Decision outcome."""

    ACCEPT = "accept"  # Auto-accept the top candidate
    ARBITRATE = "arbitrate"  # Ask the tie-break arbitrator
    LOW_CONFIDENCE = "low_confidence"  # Take the top candidate, flag for review
    NO_MATCH = "no_match"  # Nothing to choose from


@dataclass(frozen=True)
class DecisionThresholds:
    """Thresholds of the decision policy."""

    accept: float = AUTO_ACCEPT_THRESHOLD
    min_margin: float = AUTO_ACCEPT_MIN_MARGIN
    arbitrate: float = ARBITRATION_THRESHOLD
    low_confidence_floor: float = LOW_CONFIDENCE_FLOOR
    arbitration_candidates: int = ARBITRATION_MAX_CANDIDATES
    arbitrated_confidence: float = ARBITRATED_CONFIDENCE  # Confidence of an oracle-selected candidate


@dataclass
class TieredDecision:
    """Result of the decision policy."""

    decision: Decision
    top: ScoredCandidate | None
    margin: float
    reason: str
    shortlist: list[ScoredCandidate] = field(default_factory=list)  # Arbitration candidates


class DecisionPolicy:
    """Turns ranked candidates into a decision."""

    def __init__(self, thresholds: DecisionThresholds | None = None):
        self.thresholds = thresholds or DecisionThresholds()

    def low_confidence(self, score: float) -> float:
        """Reduced confidence for a top candidate accepted without certainty."""
        return max(self.thresholds.low_confidence_floor, score)

    def decide(self, ranked: list[ScoredCandidate]) -> TieredDecision:
        """
        Decide on candidates already sorted by descending score.

        Args:
            ranked: Output of CompositeScorer.rank()

        Returns:
            TieredDecision
        """
        t = self.thresholds
        if not ranked:
            return TieredDecision(Decision.NO_MATCH, None, 0.0, "no candidates")

        top = ranked[0]
        second = ranked[1].score if len(ranked) > 1 else 0.0
        margin = top.score - second

        if top.score >= t.accept - SCORE_EPSILON and margin >= t.min_margin - SCORE_EPSILON:
            return TieredDecision(
                Decision.ACCEPT,
                top,
                margin,
                f"score {top.score:.3f} >= {t.accept} with margin {margin:.3f}",
            )

        if top.score >= t.arbitrate - SCORE_EPSILON and len(ranked) >= 2:
            return TieredDecision(
                Decision.ARBITRATE,
                top,
                margin,
                f"score {top.score:.3f} in ambiguous band (margin {margin:.3f})",
                shortlist=ranked[: t.arbitration_candidates],
            )

        return TieredDecision(
            Decision.LOW_CONFIDENCE,
            top,
            margin,
            f"score {top.score:.3f} below acceptance",
        )
