"""
Registry cache with bounded staleness.

Wraps any Registry and memoizes exact lookups and lexical searches in an
AppCache namespace with a short TTL. Vector searches and writes pass through.
Callers own the cache and must call invalidate() after batch writes to the
underlying registry (bulk import, embedding refresh).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime

from registry_resolver.cache import AppCache
from registry_resolver.constants import (
    CANDIDATE_LIMIT,
    EXACT_LOOKUP_LIMIT,
    REGISTRY_CACHE_TTL_SECONDS,
)
from registry_resolver.domain.models import EntityKind, RegistryEntry
from registry_resolver.registry.base import (
    EmbeddingStats,
    LookupField,
    Registry,
    SearchScope,
    VectorFilter,
)

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "registry"


class CachedRegistry(Registry):
    """Read-through cache in front of another registry."""

    def __init__(
        self,
        registry: Registry,
        cache: AppCache,
        ttl_seconds: float = REGISTRY_CACHE_TTL_SECONDS,
        namespace: str = CACHE_NAMESPACE,
    ):
        self.registry = registry
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace

    def _cached(self, key: str, loader):
        hit = self.cache.get(self.namespace, key)
        if hit is not None:
            return hit
        value = loader()
        self.cache.set(self.namespace, key, value, ttl_seconds=self.ttl_seconds)
        return value

    def exact_lookup(
        self,
        field: LookupField,
        value: str,
        limit: int = EXACT_LOOKUP_LIMIT,
    ) -> list[RegistryEntry]:
        key = f"exact:{field.value}:{limit}:{value}"
        return self._cached(key, lambda: self.registry.exact_lookup(field, value, limit))

    def lexical_search(
        self,
        term: str,
        scope: SearchScope = SearchScope.ALL,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[RegistryEntry]:
        key = f"lexical:{scope.value}:{limit}:{term.strip().lower()}"
        return self._cached(key, lambda: self.registry.lexical_search(term, scope, limit))

    def vector_search(
        self,
        embedding: list[float],
        filter: VectorFilter | None = None,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[tuple[RegistryEntry, float]]:
        return self.registry.vector_search(embedding, filter, limit)

    def record_verification(
        self,
        identifier: str,
        method: str,
        confidence: float,
        verified_at: datetime,
    ) -> None:
        self.registry.record_verification(identifier, method, confidence, verified_at)

    def iter_entries(self, kind: EntityKind | None = None) -> Iterator[RegistryEntry]:
        return self.registry.iter_entries(kind)

    def update_embedding(self, identifier: str, embedding: list[float], text_hash: str) -> None:
        self.registry.update_embedding(identifier, embedding, text_hash)

    def embedding_stats(self, kind: EntityKind | None = None) -> EmbeddingStats:
        return self.registry.embedding_stats(kind)

    def invalidate(self) -> int:
        """Drop every cached lookup. Returns the number of keys removed."""
        removed = self.cache.clear_namespace(self.namespace)
        logger.info(f"Invalidated registry cache ({removed} keys)")
        return removed
