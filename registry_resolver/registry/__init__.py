"""Reference registry port and adapters."""

from registry_resolver.registry.base import (
    EmbeddingStats,
    LookupField,
    Registry,
    SearchScope,
    VectorFilter,
    format_external_id,
)
from registry_resolver.registry.cached import CachedRegistry
from registry_resolver.registry.memory import InMemoryRegistry
from registry_resolver.registry.neo4j_registry import Neo4jRegistry

__all__ = [
    "Registry",
    "LookupField",
    "SearchScope",
    "VectorFilter",
    "EmbeddingStats",
    "format_external_id",
    "InMemoryRegistry",
    "CachedRegistry",
    "Neo4jRegistry",
]
