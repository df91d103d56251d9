"""
Candidate Retrieval Module.

Produces a bounded set of distinct candidates when the deterministic stage
found nothing. Two strategies run and their results are unioned by identifier:
- lexical: substring search of names, aliases and emails for the query name,
  its expansions and its root form, plus a domain-scoped email search
- semantic: vector search with the query embedding, optionally pre-filtered
  by domain (entries whose names contain the root name are also admitted)

Every candidate is annotated with its per-query signals (see annotate()).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from registry_resolver.constants import (
    CANDIDATE_LIMIT,
    LEXICAL_TERM_LIMIT,
    MIN_LEXICAL_TERM_LENGTH,
)
from registry_resolver.domain.models import (
    Candidate,
    NormalizedQuery,
    RegistryEntry,
    RetrievalSource,
)
from registry_resolver.entity_resolution.normalizer import (
    is_organization_domain,
    name_key,
    normalize_text,
)
from registry_resolver.registry.base import Registry, SearchScope, VectorFilter
from registry_resolver.similarity.cosine import cosine_similarity

logger = logging.getLogger(__name__)

Checkpoint = Callable[[], None] | None


def _check(checkpoint: Checkpoint) -> None:
    if checkpoint is not None:
        checkpoint()


def lexical_similarity(query: NormalizedQuery, entry: RegistryEntry) -> float:
    """Best token overlap (Jaccard) between the query name and the entry's names."""
    if not query.name_key:
        return 0.0
    query_tokens = set(query.name_key.split())
    best = 0.0
    for name in entry.names:
        key = name_key(name)
        if not key:
            continue
        tokens = set(key.split())
        overlap = len(query_tokens & tokens) / len(query_tokens | tokens)
        best = max(best, overlap)
    return best


def names_contain(query: NormalizedQuery, entry: RegistryEntry) -> bool:
    """Substring containment, either way, between query name/root and entry names."""
    needles = [p for p in (query.name, query.root_name) if p and len(p) >= MIN_LEXICAL_TERM_LENGTH]
    if not needles:
        return False
    for name in entry.names:
        normalized = normalize_text(name)
        if not normalized:
            continue
        for needle in needles:
            if needle in normalized or normalized in needle:
                return True
    return False


def annotate(
    candidate: Candidate,
    query: NormalizedQuery,
    query_embedding: list[float] | None = None,
    operating_domain: str | None = None,
) -> Candidate:
    """
    Set the per-query flags on a candidate.

    - email_match: a query email equals the entry's primary or alternate email
    - domain_match: same organization domain, only without an exact email match
    - name_match: substring containment on names
    - cosine_sim: computed locally when the candidate was not retrieved
      semantically but both embeddings exist
    """
    entry = candidate.entry
    entry_emails = entry.emails
    candidate.email_match = any(e in entry_emails for e in query.emails)

    entry_domains = {e.split("@")[1] for e in entry_emails if "@" in e}
    candidate.domain_match = (
        not candidate.email_match
        and is_organization_domain(query.domain, operating_domain)
        and query.domain in entry_domains
    )
    candidate.name_match = names_contain(query, entry)
    candidate.lexical_score = lexical_similarity(query, entry)

    if candidate.cosine_sim is None and query_embedding is not None and entry.embedding:
        if len(entry.embedding) == len(query_embedding):
            candidate.cosine_sim = cosine_similarity(query_embedding, entry.embedding)
    return candidate


def _prerank_key(candidate: Candidate):
    cos = candidate.cosine_sim if candidate.cosine_sim is not None else 0.0
    return (
        -int(candidate.email_match),
        -int(candidate.domain_match),
        -int(candidate.name_match),
        -cos,
        -candidate.lexical_score,
        candidate.identifier,
    )


class LexicalRetriever:
    """Substring search over names, aliases and emails."""

    def __init__(
        self,
        registry: Registry,
        limit: int = CANDIDATE_LIMIT,
        term_limit: int = LEXICAL_TERM_LIMIT,
        operating_domain: str | None = None,
    ):
        self.registry = registry
        self.limit = limit
        self.term_limit = term_limit
        self.operating_domain = operating_domain

    def terms(self, query: NormalizedQuery) -> list[str]:
        """Search terms: normalized name, root form, then expansions (deduplicated)."""
        ordered = [query.name, query.root_name, *sorted(query.expansions)]
        result: list[str] = []
        for term in ordered:
            if term and len(term) >= MIN_LEXICAL_TERM_LENGTH and term not in result:
                result.append(term)
        return result[: self.term_limit]

    def retrieve(self, query: NormalizedQuery, checkpoint: Checkpoint = None) -> list[RegistryEntry]:
        seen: dict[str, RegistryEntry] = {}
        for term in self.terms(query):
            _check(checkpoint)
            for entry in self.registry.lexical_search(term, SearchScope.ALL, self.limit):
                seen.setdefault(entry.identifier, entry)

        if is_organization_domain(query.domain, self.operating_domain):
            _check(checkpoint)
            for entry in self.registry.lexical_search(query.domain, SearchScope.EMAIL_DOMAIN, self.limit):
                seen.setdefault(entry.identifier, entry)

        return [e for e in seen.values() if e.kind is query.kind]


class SemanticRetriever:
    """
    Vector search with the query embedding.

    Pre-filters by domain (or a name containing the query root name) when the
    query carries an organization domain, and retries unfiltered when the
    filtered search finds nothing.
    """

    def __init__(
        self,
        registry: Registry,
        limit: int = CANDIDATE_LIMIT,
        operating_domain: str | None = None,
    ):
        self.registry = registry
        self.limit = limit
        self.operating_domain = operating_domain

    def retrieve(
        self,
        query: NormalizedQuery,
        embedding: list[float],
        checkpoint: Checkpoint = None,
    ) -> list[tuple[RegistryEntry, float]]:
        results: list[tuple[RegistryEntry, float]] = []
        if is_organization_domain(query.domain, self.operating_domain):
            _check(checkpoint)
            bounds = VectorFilter(domain=query.domain, name_hint=query.root_name)
            results = self.registry.vector_search(embedding, bounds, self.limit)
            if not results:
                logger.debug(f"Domain-filtered vector search empty for {query.domain}, retrying unfiltered")

        if not results:
            _check(checkpoint)
            results = self.registry.vector_search(embedding, None, self.limit)

        return [(entry, sim) for entry, sim in results if entry.kind is query.kind]


class CandidateRetriever:
    """Unions lexical and semantic retrieval into at most `limit` annotated candidates."""

    def __init__(
        self,
        registry: Registry,
        limit: int = CANDIDATE_LIMIT,
        operating_domain: str | None = None,
        lexical: LexicalRetriever | None = None,
        semantic: SemanticRetriever | None = None,
    ):
        self.limit = limit
        self.operating_domain = operating_domain
        self.lexical = lexical or LexicalRetriever(registry, limit, operating_domain=operating_domain)
        self.semantic = semantic or SemanticRetriever(registry, limit, operating_domain=operating_domain)

    def retrieve(
        self,
        query: NormalizedQuery,
        embedding: list[float] | None = None,
        checkpoint: Checkpoint = None,
    ) -> list[Candidate]:
        """
        Retrieve candidates for a query.

        Args:
            query: Normalized query
            embedding: Query embedding; None means lexical-only retrieval
            checkpoint: Called before every registry read (deadline enforcement)

        Returns:
            Up to `limit` distinct candidates, strongest signals first

        Raises:
            StorageError: Registry read failed
        """
        candidates: dict[str, Candidate] = {}

        if embedding is not None:
            for entry, sim in self.semantic.retrieve(query, embedding, checkpoint):
                candidate = candidates.setdefault(entry.identifier, Candidate(entry=entry))
                candidate.cosine_sim = sim
                candidate.sources.add(RetrievalSource.SEMANTIC)

        for entry in self.lexical.retrieve(query, checkpoint):
            candidate = candidates.setdefault(entry.identifier, Candidate(entry=entry))
            candidate.sources.add(RetrievalSource.LEXICAL)

        annotated = [
            annotate(c, query, embedding, self.operating_domain) for c in candidates.values()
        ]
        annotated.sort(key=_prerank_key)
        logger.debug(
            f"Retrieved {len(annotated)} candidates "
            f"({'lexical+semantic' if embedding is not None else 'lexical only'}), keeping {self.limit}"
        )
        return annotated[: self.limit]

    def from_entries(
        self,
        query: NormalizedQuery,
        entries: list[RegistryEntry],
        embedding: list[float] | None = None,
    ) -> list[Candidate]:
        """Turn an ambiguous exact-stage hit set into annotated candidates."""
        pool = [
            annotate(
                Candidate(entry=e, sources={RetrievalSource.EXACT}),
                query,
                embedding,
                self.operating_domain,
            )
            for e in entries
        ]
        pool.sort(key=_prerank_key)
        return pool
