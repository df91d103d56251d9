"""
Entity Resolution Module.

Matches a noisy description of a customer or contact against the reference
registry and returns one best match with a calibrated confidence, or a
principled no-match.

This module separates concerns into distinct, testable components:
- Normalization (canonical query fields, expansions)
- Override table (operator-curated brand shortcuts)
- Deterministic matching (exact lookups in priority order)
- Candidate retrieval (lexical + semantic)
- Composite scoring and decision policy
- Tie-break arbitration (constrained LLM)
- Verification recording

Each component can be tested independently and swapped out for improved versions.
"""

from registry_resolver.entity_resolution.arbitration import (
    ArbitrationDecision,
    ArbitrationOracle,
    OpenAIArbitrationOracle,
    TieBreakArbitrator,
)
from registry_resolver.entity_resolution.candidates import CandidateRetriever
from registry_resolver.entity_resolution.matchers import (
    DeterministicMatcher,
    DeterministicOutcome,
    ExactStage,
)
from registry_resolver.entity_resolution.normalizer import Normalizer, infer_role, normalize_query
from registry_resolver.entity_resolution.overrides import OverrideRule, OverrideTable
from registry_resolver.entity_resolution.resolver import Deadline, EntityResolver
from registry_resolver.entity_resolution.scoring import CompositeScorer, ScoringWeights
from registry_resolver.entity_resolution.tiered_decision import (
    Decision,
    DecisionPolicy,
    DecisionThresholds,
)
from registry_resolver.entity_resolution.verification import VerificationRecorder

__all__ = [
    # Normalization
    "Normalizer",
    "normalize_query",
    "infer_role",
    # Overrides
    "OverrideRule",
    "OverrideTable",
    # Deterministic matching
    "ExactStage",
    "DeterministicMatcher",
    "DeterministicOutcome",
    # Retrieval
    "CandidateRetriever",
    # Scoring and decisions
    "CompositeScorer",
    "ScoringWeights",
    "Decision",
    "DecisionPolicy",
    "DecisionThresholds",
    # Arbitration
    "ArbitrationDecision",
    "ArbitrationOracle",
    "OpenAIArbitrationOracle",
    "TieBreakArbitrator",
    # Verification
    "VerificationRecorder",
    # Main resolver
    "Deadline",
    "EntityResolver",
]
