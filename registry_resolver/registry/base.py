"""
Reference Registry port.

The engine reads the registry through three query capabilities (exact lookup,
lexical search, vector search) and writes only verification metadata.
Maintenance workflows additionally enumerate entries and store embeddings.

Every adapter raises StorageError for backend failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from registry_resolver.constants import CANDIDATE_LIMIT, EXACT_LOOKUP_LIMIT
from registry_resolver.domain.models import EntityKind, RegistryEntry
from registry_resolver.entity_resolution.normalizer import normalize_text


def search_names(entry: RegistryEntry) -> list[str]:
    """Canonical name and aliases in the same normalized form as query terms."""
    return [n for n in (normalize_text(name) for name in entry.names) if n]


class LookupField(Enum):
    """Fields supported by exact lookup."""

    IDENTIFIER = "identifier"
    EXTERNAL_ID = "external_id"  # Value formatted as "<scheme>:<number>"
    EMAIL = "email"  # Primary or alternate email
    DOMAIN = "domain"  # Email domain
    NAME_KEY = "name_key"  # name_key() of the canonical name or an alias
    PHONE = "phone"  # Phone digits


class SearchScope(Enum):
    """Where lexical search looks for the term."""

    ALL = "all"  # Name, aliases and emails
    EMAIL_DOMAIN = "email_domain"  # Domain part of emails only


@dataclass(frozen=True)
class VectorFilter:
    """Optional pre-filter bounding a vector search (either condition admits an entry)."""

    domain: str | None = None
    name_hint: str | None = None

    @property
    def empty(self) -> bool:
        return not self.domain and not self.name_hint


@dataclass(frozen=True)
class EmbeddingStats:
    """Embedding coverage of a registry."""

    total: int
    with_embedding: int

    @property
    def without_embedding(self) -> int:
        return self.total - self.with_embedding

    @property
    def percent(self) -> float:
        return (self.with_embedding / self.total * 100) if self.total else 0.0


def format_external_id(scheme: str, number: str) -> str:
    """Lookup value for an external identifier, e.g. ("asi", "12345") -> "asi:12345"."""
    return f"{scheme.strip().lower()}:{number.strip()}"


def parse_external_id(value: str) -> tuple[str, str]:
    """Inverse of format_external_id()."""
    scheme, _, number = value.partition(":")
    return scheme, number


class Registry(ABC):
    """Abstract reference registry. Resolution reads only active entries."""

    @abstractmethod
    def exact_lookup(
        self,
        field: LookupField,
        value: str,
        limit: int = EXACT_LOOKUP_LIMIT,
    ) -> list[RegistryEntry]:
        """
        Find active entries whose field equals value exactly.

        Args:
            field: Field to compare
            value: Normalized value
            limit: Maximum number of entries returned

        Returns:
            Matching entries, ordered by identifier
        """
        ...

    @abstractmethod
    def lexical_search(
        self,
        term: str,
        scope: SearchScope = SearchScope.ALL,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[RegistryEntry]:
        """Find active entries containing term (case-insensitive substring)."""
        ...

    @abstractmethod
    def vector_search(
        self,
        embedding: list[float],
        filter: VectorFilter | None = None,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[tuple[RegistryEntry, float]]:
        """Top active entries by cosine similarity, highest first."""
        ...

    @abstractmethod
    def record_verification(
        self,
        identifier: str,
        method: str,
        confidence: float,
        verified_at: datetime,
    ) -> None:
        """Set verified=True and refresh verification metadata on one entry."""
        ...

    @abstractmethod
    def iter_entries(self, kind: EntityKind | None = None) -> Iterator[RegistryEntry]:
        """Iterate over all entries (active or not), for maintenance workflows."""
        ...

    @abstractmethod
    def update_embedding(self, identifier: str, embedding: list[float], text_hash: str) -> None:
        """Store a regenerated embedding and the hash of its source text."""
        ...

    @abstractmethod
    def embedding_stats(self, kind: EntityKind | None = None) -> EmbeddingStats:
        """Count entries with and without embeddings."""
        ...
