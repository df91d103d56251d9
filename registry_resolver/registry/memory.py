"""
In-process registry.

Holds entries in a dict and answers vector searches with a numpy matrix of
the stored embeddings. Suitable for tests, small registries and batch jobs
that load the registry once.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable, Iterator
from datetime import datetime

import numpy as np

from registry_resolver.constants import CANDIDATE_LIMIT, EXACT_LOOKUP_LIMIT
from registry_resolver.domain.models import EntityKind, RegistryEntry
from registry_resolver.entity_resolution.normalizer import name_key, normalize_phone, normalize_text
from registry_resolver.exceptions import StorageError
from registry_resolver.registry.base import (
    EmbeddingStats,
    LookupField,
    Registry,
    SearchScope,
    VectorFilter,
    parse_external_id,
    search_names,
)
from registry_resolver.similarity.cosine import top_k_by_similarity

logger = logging.getLogger(__name__)


def _entry_domains(entry: RegistryEntry) -> set[str]:
    return {email.split("@")[1] for email in entry.emails if "@" in email}


def _entry_matches(entry: RegistryEntry, field: LookupField, value: str) -> bool:
    if field is LookupField.IDENTIFIER:
        return entry.identifier == value
    if field is LookupField.EXTERNAL_ID:
        scheme, number = parse_external_id(value)
        return any(
            k.strip().lower() == scheme and v.strip() == number
            for k, v in entry.external_ids.items()
        )
    if field is LookupField.EMAIL:
        return value in entry.emails
    if field is LookupField.DOMAIN:
        return value in _entry_domains(entry)
    if field is LookupField.NAME_KEY:
        return any(name_key(n) == value for n in entry.names)
    if field is LookupField.PHONE:
        digits = entry.phone_digits or normalize_phone(entry.phone)
        return digits == value
    raise ValueError(f"Unsupported lookup field: {field}")


class InMemoryRegistry(Registry):
    """
    Registry backed by a dict of entries.

    Thread-safe: reads and verification writes share one re-entrant lock.
    Every public call is counted in `calls` (method name -> count).
    """

    def __init__(self, entries: Iterable[RegistryEntry] = ()):
        self._lock = threading.RLock()
        self._entries: dict[str, RegistryEntry] = {}
        self._matrix: tuple[list[str], np.ndarray] | None = None
        self.calls: Counter[str] = Counter()
        for entry in entries:
            self.add(entry)

    def add(self, entry: RegistryEntry) -> None:
        """Insert or replace an entry."""
        with self._lock:
            self._entries[entry.identifier] = entry
            self._matrix = None

    def get(self, identifier: str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.get(identifier)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _active(self) -> list[RegistryEntry]:
        return sorted(
            (e for e in self._entries.values() if e.active),
            key=lambda e: e.identifier,
        )

    def exact_lookup(
        self,
        field: LookupField,
        value: str,
        limit: int = EXACT_LOOKUP_LIMIT,
    ) -> list[RegistryEntry]:
        with self._lock:
            self.calls["exact_lookup"] += 1
            hits = [e for e in self._active() if _entry_matches(e, field, value)]
        return hits[:limit]

    def lexical_search(
        self,
        term: str,
        scope: SearchScope = SearchScope.ALL,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[RegistryEntry]:
        if scope is SearchScope.EMAIL_DOMAIN:
            needle = term.strip().lower()
        else:
            needle = normalize_text(term) or ""
        if not needle:
            return []
        with self._lock:
            self.calls["lexical_search"] += 1
            hits = []
            for entry in self._active():
                if scope is SearchScope.EMAIL_DOMAIN:
                    haystack = list(_entry_domains(entry))
                else:
                    haystack = search_names(entry) + entry.emails
                if any(needle in text for text in haystack):
                    hits.append(entry)
        # Shorter names first: the closer the containment, the better the hit
        hits.sort(key=lambda e: (len(e.name), e.identifier))
        return hits[:limit]

    def _embedding_matrix(self) -> tuple[list[str], np.ndarray]:
        if self._matrix is None:
            rows = [e for e in self._active() if e.embedding]
            ids = [e.identifier for e in rows]
            if rows:
                matrix = np.asarray([e.embedding for e in rows], dtype=np.float64)
            else:
                matrix = np.zeros((0, 0), dtype=np.float64)
            self._matrix = (ids, matrix)
        return self._matrix

    def vector_search(
        self,
        embedding: list[float],
        filter: VectorFilter | None = None,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[tuple[RegistryEntry, float]]:
        with self._lock:
            self.calls["vector_search"] += 1
            ids, matrix = self._embedding_matrix()
            if not ids:
                return []

            if filter is not None and not filter.empty:
                keep = [
                    i
                    for i, identifier in enumerate(ids)
                    if self._passes(self._entries[identifier], filter)
                ]
                if not keep:
                    return []
                ids = [ids[i] for i in keep]
                matrix = matrix[keep]

            if matrix.shape[1] != len(embedding):
                raise StorageError(
                    f"Query embedding has {len(embedding)} dimensions, registry has {matrix.shape[1]}"
                )
            ranked = top_k_by_similarity(embedding, matrix, limit)
            return [(self._entries[ids[row]], sim) for row, sim in ranked]

    @staticmethod
    def _passes(entry: RegistryEntry, filter: VectorFilter) -> bool:
        if filter.domain and filter.domain in _entry_domains(entry):
            return True
        if filter.name_hint:
            hint = normalize_text(filter.name_hint)
            return bool(hint) and any(hint in n for n in search_names(entry))
        return False

    def record_verification(
        self,
        identifier: str,
        method: str,
        confidence: float,
        verified_at: datetime,
    ) -> None:
        with self._lock:
            self.calls["record_verification"] += 1
            entry = self._entries.get(identifier)
            if entry is None:
                raise StorageError(f"Unknown registry entry: {identifier}")
            entry.verification.verified = True
            entry.verification.last_verified_at = verified_at
            entry.verification.last_verified_method = method
            entry.verification.verification_confidence = confidence

    def iter_entries(self, kind: EntityKind | None = None) -> Iterator[RegistryEntry]:
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: e.identifier)
        for entry in entries:
            if kind is None or entry.kind is kind:
                yield entry

    def update_embedding(self, identifier: str, embedding: list[float], text_hash: str) -> None:
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                raise StorageError(f"Unknown registry entry: {identifier}")
            entry.embedding = list(embedding)
            entry.embedding_text_hash = text_hash
            self._matrix = None

    def embedding_stats(self, kind: EntityKind | None = None) -> EmbeddingStats:
        entries = list(self.iter_entries(kind))
        return EmbeddingStats(
            total=len(entries),
            with_embedding=sum(1 for e in entries if e.embedding),
        )
