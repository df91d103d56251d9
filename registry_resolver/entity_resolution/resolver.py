"""
Entity Resolver Module.

Orchestrates the full resolution pipeline:
1. Normalize the query
2. Check the override table
3. Deterministic exact lookups (short-circuit on a unique hit)
4. Retrieve candidates (lexical + semantic)
5. Score and decide (accept, arbitrate, low confidence, no match)
6. Record verification for accepted matches

The query embedding is computed concurrently with the deterministic stage.
Each step is testable independently.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from registry_resolver.cache import AppCache
from registry_resolver.config import Settings, get_settings
from registry_resolver.constants import DEFAULT_WORKERS, MAX_ALTERNATIVES
from registry_resolver.domain.models import (
    Alternative,
    EntityKind,
    MatchMethod,
    MatchResult,
    NormalizedQuery,
    Query,
    RegistryEntry,
)
from registry_resolver.embeddings.provider import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from registry_resolver.embeddings.text import query_embedding_text
from registry_resolver.entity_resolution.arbitration import (
    ArbitrationOracle,
    ArbitrationStatus,
    OpenAIArbitrationOracle,
    TieBreakArbitrator,
)
from registry_resolver.entity_resolution.candidates import CandidateRetriever
from registry_resolver.entity_resolution.matchers import DeterministicMatcher, DeterministicOutcome
from registry_resolver.entity_resolution.normalizer import Normalizer, infer_role
from registry_resolver.entity_resolution.overrides import OverrideRule, OverrideTable
from registry_resolver.entity_resolution.scoring import (
    CompositeScorer,
    ScoredCandidate,
    evidence_tags,
)
from registry_resolver.entity_resolution.tiered_decision import Decision, DecisionPolicy
from registry_resolver.entity_resolution.verification import VerificationRecorder
from registry_resolver.exceptions import (
    DeadlineExceededError,
    InputError,
    ProviderError,
    StorageError,
)
from registry_resolver.registry.base import Registry
from registry_resolver.utils.parallel import execute_parallel

logger = logging.getLogger(__name__)


class Deadline:
    """Caller-supplied time budget for one resolution call."""

    def __init__(self, timeout: float | None = None, clock: Callable[[], float] = time.monotonic):
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._clock = clock
        self._expires_at = clock() + timeout if timeout is not None else None

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def check(self) -> None:
        """Raise DeadlineExceededError when the budget is spent."""
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError("Resolution deadline exceeded")


class EntityResolver:
    """
    Main entity resolution orchestrator.

    Configurable pipeline with pluggable components. Safe to share across
    threads: per-call state lives on the stack, and the registry is the only
    shared resource.
    """

    def __init__(
        self,
        registry: Registry,
        embedding_provider: EmbeddingProvider | None = None,
        oracle: ArbitrationOracle | None = None,
        override_table: OverrideTable | None = None,
        operating_domain: str | None = None,
        scorer: CompositeScorer | None = None,
        policy: DecisionPolicy | None = None,
        recorder: VerificationRecorder | None = None,
        max_workers: int = DEFAULT_WORKERS,
    ):
        """
        Initialize resolver with configurable components.

        Args:
            registry: Reference registry (owned by the caller)
            embedding_provider: Query embedding provider (None: lexical-only retrieval)
            oracle: Arbitration oracle (None: ambiguous matches fall back to the top candidate)
            override_table: Override rules (default: built-in table)
            operating_domain: The system's own email domain
            scorer: Composite scorer (default weights when None)
            policy: Decision policy (default thresholds when None)
            recorder: Verification recorder (default: writes to registry)
            max_workers: Concurrent embedding calls, and default batch concurrency
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.registry = registry
        self.embedding_provider = embedding_provider
        self.override_table = override_table if override_table is not None else OverrideTable()
        self.normalizer = Normalizer(operating_domain)
        self.matcher = DeterministicMatcher(registry, operating_domain=self.normalizer.operating_domain)
        self.retriever = CandidateRetriever(registry, operating_domain=self.normalizer.operating_domain)
        self.scorer = scorer or CompositeScorer()
        self.policy = policy or DecisionPolicy()
        self.arbitrator = TieBreakArbitrator(oracle)
        self.recorder = recorder if recorder is not None else VerificationRecorder(registry)
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="query-embedding")

    @classmethod
    def from_settings(
        cls,
        registry: Registry,
        settings: Settings | None = None,
        cache: AppCache | None = None,
    ) -> EntityResolver:
        """
        Build a resolver with OpenAI collaborators configured from settings.

        Args:
            registry: Reference registry
            settings: Settings (default: get_settings())
            cache: Optional cache for query embeddings
        """
        settings = settings or get_settings()

        provider: EmbeddingProvider = OpenAIEmbeddingProvider.from_settings(settings)
        if cache is not None:
            provider = CachedEmbeddingProvider(provider, cache)

        if settings.override_table_path:
            overrides = OverrideTable.from_file(settings.override_table_path)
        else:
            overrides = OverrideTable()

        return cls(
            registry,
            embedding_provider=provider,
            oracle=OpenAIArbitrationOracle.from_settings(settings),
            override_table=overrides,
            operating_domain=settings.operating_domain,
            max_workers=settings.max_workers,
        )

    def close(self) -> None:
        """Stop the embedding worker threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> EntityResolver:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def resolve(self, query: Query, timeout: float | None = None) -> MatchResult:
        """
        Resolve one query against the registry.

        Args:
            query: Raw query
            timeout: Deadline in seconds for the whole call (unbounded when None)

        Returns:
            MatchResult (no-match and low-confidence results are flagged for review)

        Raises:
            StorageError: Registry read failed
            DeadlineExceededError: The deadline elapsed before a decision
        """
        started = time.monotonic()
        deadline = Deadline(timeout)
        normalized = self.normalizer.normalize(query)

        try:
            self._require_usable(normalized)
        except InputError as e:
            logger.info(f"resolve kind={query.kind.value} method=unmatched reason={e}")
            return MatchResult.unmatched(fallback=normalized, evidence=["no_usable_field"])

        result, candidate_count = self._resolve(normalized, deadline)

        if result.identifier is not None:
            self.recorder.record(result.identifier, result.method, result.confidence)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"resolve kind={normalized.kind.value} method={result.method.value} "
            f"identifier={result.identifier} confidence={result.confidence:.3f} "
            f"candidates={candidate_count} elapsed_ms={elapsed_ms:.0f}"
        )
        return result

    def resolve_many(
        self,
        queries: Iterable[Query],
        max_workers: int | None = None,
        timeout: float | None = None,
        raise_on_error: bool = True,
        show_progress: bool = False,
    ) -> list[MatchResult]:
        """
        Resolve independent queries on a bounded worker pool.

        Args:
            queries: Queries to resolve
            max_workers: Concurrent resolutions (default: the resolver's max_workers)
            timeout: Per-query deadline in seconds
            raise_on_error: Re-raise the first failure (in input order); otherwise
                            failed queries come back as unmatched results
            show_progress: Show a progress bar

        Returns:
            One MatchResult per query, in input order
        """
        outcomes = execute_parallel(
            list(queries),
            lambda q: self.resolve(q, timeout=timeout),
            max_workers=max_workers or self.max_workers,
            desc="Resolving",
            unit="query",
            show_progress=show_progress,
        )

        results = []
        for query, result, error in outcomes:
            if error is not None:
                if raise_on_error:
                    raise error
                logger.warning(f"Resolution failed for {query.kind.value} query: {error}")
                results.append(
                    MatchResult.unmatched(
                        fallback=self.normalizer.normalize(query),
                        evidence=[f"resolution_error: {type(error).__name__}"],
                    )
                )
            else:
                results.append(result)
        return results

    @staticmethod
    def _require_usable(query: NormalizedQuery) -> None:
        if not query.has_usable_field:
            raise InputError("query has no identifier, email or name")

    def _lookup_override(self, query: NormalizedQuery) -> OverrideRule | None:
        # Brand overrides describe companies, never individual contacts
        if query.kind is not EntityKind.CUSTOMER:
            return None
        domains = []
        for email in query.emails:
            domain = email.split("@")[1]
            if domain not in domains:
                domains.append(domain)
        for domain in domains or [None]:
            rule = self.override_table.lookup(query.name, domain)
            if rule is not None:
                return rule
        return None

    def _resolve(self, query: NormalizedQuery, deadline: Deadline) -> tuple[MatchResult, int]:
        rule = self._lookup_override(query)
        if rule is not None:
            return (
                MatchResult(
                    identifier=rule.identifier,
                    name=rule.name,
                    confidence=1.0,
                    method=MatchMethod.OVERRIDE,
                    evidence=["brand_override"],
                ),
                0,
            )

        embedding_future = self._start_embedding(query, deadline)
        try:
            deterministic = self.matcher.match(query, checkpoint=deadline.check)
            if deterministic.outcome is DeterministicOutcome.UNIQUE:
                entry = deterministic.entry
                return (
                    MatchResult(
                        identifier=entry.identifier,
                        name=entry.name,
                        confidence=1.0,
                        method=MatchMethod.EXACT,
                        evidence=[f"exact_{deterministic.stage}_match"],
                        role=self._role(query, entry),
                    ),
                    1,
                )

            evidence: list[str] = []
            embedding = self._await_embedding(embedding_future, deadline, evidence)
            deadline.check()

            if deterministic.outcome is DeterministicOutcome.AMBIGUOUS:
                evidence.append(f"ambiguous_{deterministic.stage}_match")
                candidates = self.retriever.from_entries(query, deterministic.entries, embedding)
            else:
                candidates = self.retriever.retrieve(query, embedding, checkpoint=deadline.check)
        finally:
            if embedding_future is not None:
                embedding_future.cancel()

        ranked = self.scorer.rank(candidates)
        return self._decide(query, ranked, deadline, evidence), len(ranked)

    def _start_embedding(self, query: NormalizedQuery, deadline: Deadline) -> Future | None:
        if self.embedding_provider is None:
            return None
        text = query_embedding_text(query)
        if not text:
            return None
        return self._executor.submit(self.embedding_provider.embed, text, deadline.remaining())

    def _await_embedding(
        self,
        future: Future | None,
        deadline: Deadline,
        evidence: list[str],
    ) -> list[float] | None:
        """Wait for the query embedding; any provider problem means lexical-only retrieval."""
        if future is None:
            return None
        try:
            return future.result(timeout=deadline.remaining())
        except ProviderError as e:
            logger.warning(f"Embedding unavailable, using lexical retrieval only: {e}")
        except FutureTimeoutError:
            logger.warning("Embedding did not finish within the deadline, using lexical retrieval only")
        except (StorageError, DeadlineExceededError):
            raise
        except Exception as e:
            logger.warning(
                f"Embedding provider raised {type(e).__name__}, using lexical retrieval only: {e}"
            )
        evidence.append("embedding_unavailable")
        return None

    def _decide(
        self,
        query: NormalizedQuery,
        ranked: list[ScoredCandidate],
        deadline: Deadline,
        evidence: list[str],
    ) -> MatchResult:
        decision = self.policy.decide(ranked)
        logger.debug(f"Decision {decision.decision.value}: {decision.reason}")

        if decision.decision is Decision.NO_MATCH:
            return MatchResult.unmatched(fallback=query, evidence=evidence)

        top = decision.top
        if decision.decision is Decision.ACCEPT:
            method = MatchMethod.VECTOR if top.candidate.semantic else MatchMethod.LEXICAL
            return self._build(query, top, ranked, method, top.score, evidence_tags(top) + evidence)

        if decision.decision is Decision.ARBITRATE:
            deadline.check()
            outcome = self.arbitrator.arbitrate(query, decision.shortlist, timeout=deadline.remaining())
            if outcome.status is ArbitrationStatus.SELECTED:
                chosen = outcome.selected
                return self._build(
                    query,
                    chosen,
                    ranked,
                    MatchMethod.VECTOR_LLM,
                    self.policy.thresholds.arbitrated_confidence,
                    evidence_tags(chosen) + evidence + [f"llm_tiebreak: {outcome.reason}"],
                )
            tag = (
                "arbitration_abstained"
                if outcome.status is ArbitrationStatus.ABSTAINED
                else "arbitration_failed"
            )
            return self._build(
                query,
                top,
                ranked,
                MatchMethod.VECTOR_LOW_CONFIDENCE,
                self.policy.low_confidence(top.score),
                evidence_tags(top) + evidence + [tag],
                needs_review=True,
            )

        return self._build(
            query,
            top,
            ranked,
            MatchMethod.VECTOR_LOW_CONFIDENCE,
            self.policy.low_confidence(top.score),
            evidence_tags(top) + evidence + ["low_confidence_match"],
            needs_review=True,
        )

    def _build(
        self,
        query: NormalizedQuery,
        chosen: ScoredCandidate,
        ranked: list[ScoredCandidate],
        method: MatchMethod,
        confidence: float,
        evidence: list[str],
        needs_review: bool = False,
    ) -> MatchResult:
        alternatives: list[Alternative] = [
            s.to_alternative() for s in ranked if s.identifier != chosen.identifier
        ][:MAX_ALTERNATIVES]
        return MatchResult(
            identifier=chosen.identifier,
            name=chosen.name,
            confidence=confidence,
            method=method,
            alternatives=alternatives,
            evidence=evidence,
            needs_review=needs_review,
            role=self._role(query, chosen.candidate.entry),
        )

    @staticmethod
    def _role(query: NormalizedQuery, entry: RegistryEntry):
        if query.kind is not EntityKind.CONTACT:
            return None
        return infer_role(entry.job_title or query.job_title)
