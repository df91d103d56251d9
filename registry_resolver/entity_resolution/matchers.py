"""
Deterministic Matching Module.

Exact lookups against the registry in strict priority order. The first stage
that yields hits ends the deterministic phase:
- exactly one hit: unambiguous match (method "exact", confidence 1.0)
- several hits: the hit set becomes the candidate pool for the scorer
- zero hits: try the next stage

Each stage is isolated and testable.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from registry_resolver.constants import EXACT_LOOKUP_LIMIT, MIN_PHONE_DIGITS
from registry_resolver.domain.models import NormalizedQuery, RegistryEntry
from registry_resolver.entity_resolution.normalizer import is_organization_domain
from registry_resolver.registry.base import LookupField, Registry, format_external_id

logger = logging.getLogger(__name__)


class DeterministicOutcome(Enum):
    """Outcome of the deterministic phase."""

    UNIQUE = "unique"  # Exactly one hit: short-circuit
    AMBIGUOUS = "ambiguous"  # Several hits: score the hit set
    NO_HITS = "no_hits"  # Nothing found: run candidate retrieval


@dataclass
class DeterministicResult:
    """Result of running the deterministic stages."""

    outcome: DeterministicOutcome
    entries: list[RegistryEntry] = field(default_factory=list)
    stage: str | None = None  # Name of the stage that produced the hits

    @property
    def entry(self) -> RegistryEntry | None:
        """The single hit of a UNIQUE outcome."""
        if self.outcome is DeterministicOutcome.UNIQUE:
            return self.entries[0]
        return None


class ExactStage(ABC):
    """Abstract base class for deterministic lookup stages."""

    @abstractmethod
    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        """
        Exact lookups this stage performs for a query.

        Args:
            query: Normalized query

        Returns:
            (field, value) pairs; empty when the stage does not apply
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this stage for evidence and debugging."""
        ...

    @property
    @abstractmethod
    def priority(self) -> int:
        """Priority (lower = tried first)."""
        ...


class IdentifierStage(ExactStage):
    """
    Matches a directly supplied registry identifier.

    Most precise stage.
    """

    @property
    def name(self) -> str:
        return "identifier"

    @property
    def priority(self) -> int:
        return 10

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not query.identifier:
            return []
        return [(LookupField.IDENTIFIER, query.identifier)]


class ExternalIdStage(ExactStage):
    """Matches industry membership numbers (e.g. ASI, PPAI)."""

    @property
    def name(self) -> str:
        return "external_id"

    @property
    def priority(self) -> int:
        return 15

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        return [
            (LookupField.EXTERNAL_ID, format_external_id(scheme, number))
            for scheme, number in query.external_ids
        ]


class PrimaryEmailStage(ExactStage):
    """Matches the primary (customer or contact) email."""

    @property
    def name(self) -> str:
        return "email"

    @property
    def priority(self) -> int:
        return 20

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not query.email:
            return []
        return [(LookupField.EMAIL, query.email)]


class SenderEmailStage(ExactStage):
    """Matches the secondary (sender) email."""

    @property
    def name(self) -> str:
        return "sender_email"

    @property
    def priority(self) -> int:
        return 25

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not query.sender_email or query.sender_email == query.email:
            return []
        return [(LookupField.EMAIL, query.sender_email)]


class DomainStage(ExactStage):
    """
    Matches the email domain.

    Skipped for public mailbox providers and the operating domain, which
    cannot identify a single organization.
    """

    def __init__(self, operating_domain: str | None = None):
        self.operating_domain = operating_domain

    @property
    def name(self) -> str:
        return "domain"

    @property
    def priority(self) -> int:
        return 30

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not is_organization_domain(query.domain, self.operating_domain):
            return []
        return [(LookupField.DOMAIN, query.domain)]


class NameStage(ExactStage):
    """Matches the normalized name (case and trivial plurals ignored)."""

    @property
    def name(self) -> str:
        return "name"

    @property
    def priority(self) -> int:
        return 40

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not query.name_key:
            return []
        return [(LookupField.NAME_KEY, query.name_key)]


class PhoneStage(ExactStage):
    """Matches phone digits; short numbers are too ambiguous to route on."""

    @property
    def name(self) -> str:
        return "phone"

    @property
    def priority(self) -> int:
        return 50

    def lookups(self, query: NormalizedQuery) -> list[tuple[LookupField, str]]:
        if not query.phone_digits or len(query.phone_digits) < MIN_PHONE_DIGITS:
            return []
        return [(LookupField.PHONE, query.phone_digits)]


def default_stages(operating_domain: str | None = None) -> list[ExactStage]:
    """Standard stage set, in priority order."""
    return [
        IdentifierStage(),
        ExternalIdStage(),
        PrimaryEmailStage(),
        SenderEmailStage(),
        DomainStage(operating_domain),
        NameStage(),
        PhoneStage(),
    ]


class DeterministicMatcher:
    """Runs exact stages in priority order, stopping at the first with hits."""

    def __init__(
        self,
        registry: Registry,
        stages: list[ExactStage] | None = None,
        operating_domain: str | None = None,
        limit: int = EXACT_LOOKUP_LIMIT,
    ):
        self.registry = registry
        stages = stages if stages is not None else default_stages(operating_domain)
        self.stages = sorted(stages, key=lambda s: s.priority)
        self.limit = limit

    def match(
        self,
        query: NormalizedQuery,
        checkpoint: Callable[[], None] | None = None,
    ) -> DeterministicResult:
        """
        Run the deterministic phase for a query.

        Args:
            query: Normalized query
            checkpoint: Called before every registry read (deadline enforcement)

        Returns:
            DeterministicResult

        Raises:
            StorageError: Registry read failed
        """
        for stage in self.stages:
            lookups = stage.lookups(query)
            if not lookups:
                continue

            hits: dict[str, RegistryEntry] = {}
            for lookup_field, value in lookups:
                if checkpoint is not None:
                    checkpoint()
                for entry in self.registry.exact_lookup(lookup_field, value, self.limit):
                    if entry.kind is query.kind:
                        hits.setdefault(entry.identifier, entry)

            if not hits:
                logger.debug(f"Stage {stage.name}: no hits")
                continue

            entries = sorted(hits.values(), key=lambda e: e.identifier)
            if len(entries) == 1:
                logger.debug(f"Stage {stage.name}: unique hit {entries[0].identifier}")
                return DeterministicResult(DeterministicOutcome.UNIQUE, entries, stage.name)

            logger.debug(f"Stage {stage.name}: {len(entries)} hits, passing to scorer")
            return DeterministicResult(DeterministicOutcome.AMBIGUOUS, entries, stage.name)

        return DeterministicResult(DeterministicOutcome.NO_HITS)
