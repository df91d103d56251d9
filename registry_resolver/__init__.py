"""
Registry Resolver - entity resolution against a reference registry.

This package provides utilities for:
- Resolving noisy customer and contact references to registry entries
- Exact, lexical and vector retrieval with explainable composite scoring
- Constrained LLM tie-breaks for ambiguous matches
- Maintaining registry embeddings in Neo4j or in process
"""

import logging

# Set up NullHandler to prevent "No handler found" warnings
# when used as a library. Applications should configure their own handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Re-export commonly used items
from registry_resolver.domain.models import (
    EntityKind,
    MatchMethod,
    MatchResult,
    Query,
    RegistryEntry,
)
from registry_resolver.entity_resolution.resolver import EntityResolver
from registry_resolver.exceptions import (
    DeadlineExceededError,
    ResolutionError,
    StorageError,
)

__all__ = [
    "__version__",
    # Models
    "EntityKind",
    "MatchMethod",
    "MatchResult",
    "Query",
    "RegistryEntry",
    # Resolver
    "EntityResolver",
    # Errors
    "ResolutionError",
    "StorageError",
    "DeadlineExceededError",
]
