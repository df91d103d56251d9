"""Domain models for the resolution engine."""

from registry_resolver.domain.models import (
    Alternative,
    Candidate,
    ContactRole,
    EntityKind,
    MatchMethod,
    MatchResult,
    NormalizedQuery,
    Query,
    RegistryEntry,
    RetrievalSource,
    VerificationState,
)

__all__ = [
    "Alternative",
    "Candidate",
    "ContactRole",
    "EntityKind",
    "MatchMethod",
    "MatchResult",
    "NormalizedQuery",
    "Query",
    "RegistryEntry",
    "RetrievalSource",
    "VerificationState",
]
