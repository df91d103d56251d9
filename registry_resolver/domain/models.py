"""
Data models for entity resolution.

These dataclasses represent registry entries, incoming resolution queries,
per-query candidates and the final match result handed back to callers.
"Absent" is always None; an empty string is never used as a no-match sentinel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EntityKind(Enum):
    """Kind of entity held in a registry."""

    CUSTOMER = "customer"
    CONTACT = "contact"


class MatchMethod(Enum):
    """How a match result was reached (fixed, exhaustive)."""

    EXACT = "exact"
    OVERRIDE = "override"
    VECTOR = "vector"
    LEXICAL = "lexical"
    VECTOR_LOW_CONFIDENCE = "vector-low-confidence"
    VECTOR_LLM = "vector+llm"
    UNMATCHED = "unmatched"


class RetrievalSource(Enum):
    """Which retrieval path produced a candidate."""

    EXACT = "exact"
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class ContactRole(Enum):
    """Role of a contact, inferred from the job title."""

    PURCHASING = "Purchasing"
    ACCOUNTS_PAYABLE = "Accounts Payable"
    SALES = "Sales"
    OWNER = "Owner"
    CSR = "CSR"
    UNKNOWN = "Unknown"


@dataclass
class VerificationState:
    """Verification metadata stored on a registry entry."""

    verified: bool = False
    last_verified_at: datetime | None = None
    last_verified_method: str | None = None
    verification_confidence: float | None = None


@dataclass
class RegistryEntry:
    """One resolvable entity (customer or contact) in the reference registry."""

    identifier: str  # Unique and immutable
    name: str  # Canonical display name
    kind: EntityKind = EntityKind.CUSTOMER
    aliases: frozenset[str] = frozenset()
    email: str | None = None
    alt_email: str | None = None
    phone: str | None = None
    phone_digits: str | None = None
    address: dict[str, str] = field(default_factory=dict)  # city, state, zip, ...
    external_ids: dict[str, str] = field(default_factory=dict)  # e.g. {"asi": "12345"}
    job_title: str | None = None  # Contacts only
    company: str | None = None  # Contacts only: owning company text
    embedding: list[float] | None = None
    embedding_text_hash: str | None = None  # Hash of the text the embedding was built from
    active: bool = True
    verification: VerificationState = field(default_factory=VerificationState)

    @property
    def email_domain(self) -> str | None:
        """Domain part of the primary email, lowercased."""
        if not self.email or "@" not in self.email:
            return None
        return self.email.split("@")[1].strip().lower() or None

    @property
    def emails(self) -> list[str]:
        """Primary and alternate email, lowercased, without blanks."""
        return [e.strip().lower() for e in (self.email, self.alt_email) if e and e.strip()]

    @property
    def names(self) -> list[str]:
        """Canonical name followed by aliases."""
        return [self.name, *sorted(self.aliases)]


@dataclass
class Query:
    """
    A single resolution request as handed over by the upstream extractor.

    At least one of identifier, email/sender_email or name must be present,
    otherwise the engine answers no-match without touching the registry.
    """

    kind: EntityKind = EntityKind.CUSTOMER
    identifier: str | None = None  # Direct registry identifier
    external_ids: dict[str, str] = field(default_factory=dict)  # Industry membership numbers
    name: str | None = None  # Company name, or contact name for contact queries
    email: str | None = None  # Primary (customer/contact) email
    sender_email: str | None = None  # Secondary: the sender of the source document
    sender_name: str | None = None
    forwarded_sender: str | None = None  # Original sender of a forwarded message
    phone: str | None = None
    job_title: str | None = None  # Contacts only
    company: str | None = None  # Contacts only
    city: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class NormalizedQuery:
    """Canonical, comparable form of a Query. Produced by the Normalizer."""

    kind: EntityKind = EntityKind.CUSTOMER
    identifier: str | None = None
    external_ids: tuple[tuple[str, str], ...] = ()
    name: str | None = None  # Lowercased, trimmed, whitespace collapsed, & -> and
    root_name: str | None = None  # Name without legal suffixes and generic industry words
    name_key: str | None = None  # Name with trivial plural endings removed (exact routing)
    email: str | None = None
    sender_email: str | None = None
    domain: str | None = None
    phone_digits: str | None = None
    job_title: str | None = None
    company: str | None = None
    city: str | None = None
    state: str | None = None
    expansions: frozenset[str] = frozenset()  # Lexical-only query variants

    @property
    def has_usable_field(self) -> bool:
        """True when an identifier, an email or a name is present."""
        return bool(
            self.identifier
            or self.external_ids
            or self.email
            or self.sender_email
            or self.name
        )

    @property
    def emails(self) -> list[str]:
        """Primary then sender email, deduplicated."""
        result: list[str] = []
        for email in (self.email, self.sender_email):
            if email and email not in result:
                result.append(email)
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and fallback descriptions."""
        return {
            "kind": self.kind.value,
            "identifier": self.identifier,
            "external_ids": dict(self.external_ids),
            "name": self.name,
            "root_name": self.root_name,
            "email": self.email,
            "sender_email": self.sender_email,
            "domain": self.domain,
            "phone_digits": self.phone_digits,
            "job_title": self.job_title,
            "company": self.company,
            "city": self.city,
            "state": self.state,
        }


@dataclass
class Candidate:
    """A registry entry annotated with per-query signals. Never persisted."""

    entry: RegistryEntry
    lexical_score: float = 0.0  # Token overlap between query name and entry names (0-1)
    cosine_sim: float | None = None  # None when no embedding signal is available
    email_match: bool = False  # Exact email match
    domain_match: bool = False  # Exact domain match (set only without an exact email match)
    name_match: bool = False  # Substring containment on names
    sources: set[RetrievalSource] = field(default_factory=set)

    @property
    def identifier(self) -> str:
        return self.entry.identifier

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def semantic(self) -> bool:
        """True when the candidate carries a real embedding similarity."""
        return self.cosine_sim is not None


@dataclass(frozen=True)
class Alternative:
    """A candidate that was considered but not selected."""

    identifier: str
    name: str
    score: float


@dataclass
class MatchResult:
    """Output of one resolution call."""

    identifier: str | None
    name: str | None
    confidence: float  # 0.0 to 1.0
    method: MatchMethod
    alternatives: list[Alternative] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    needs_review: bool = False  # Low-confidence and no-match results go to manual review
    role: ContactRole | None = None  # Contacts only
    fallback: NormalizedQuery | None = None  # Best-effort description when unmatched

    @property
    def matched(self) -> bool:
        return self.identifier is not None

    @classmethod
    def unmatched(
        cls,
        fallback: NormalizedQuery | None = None,
        evidence: list[str] | None = None,
        alternatives: list[Alternative] | None = None,
    ) -> MatchResult:
        """Build a no-match result."""
        return cls(
            identifier=None,
            name=None,
            confidence=0.0,
            method=MatchMethod.UNMATCHED,
            alternatives=alternatives or [],
            evidence=evidence or [],
            needs_review=True,
            fallback=fallback,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "identifier": self.identifier,
            "name": self.name,
            "confidence": self.confidence,
            "method": self.method.value,
            "alternatives": [
                {"identifier": a.identifier, "name": a.name, "score": a.score}
                for a in self.alternatives
            ],
            "evidence": list(self.evidence),
            "needs_review": self.needs_review,
            "role": self.role.value if self.role else None,
            "fallback": self.fallback.to_dict() if self.fallback else None,
        }
