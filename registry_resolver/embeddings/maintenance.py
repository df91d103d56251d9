"""
Registry embedding maintenance.

Finds entries whose embedding is missing or was built from text that has
since changed (detected by the stored text hash), regenerates them in
batches over a bounded worker pool, and invalidates the registry cache
when anything was written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from registry_resolver.constants import DEFAULT_WORKERS, EMBEDDING_BATCH_SIZE
from registry_resolver.domain.models import EntityKind, RegistryEntry
from registry_resolver.embeddings.provider import EmbeddingProvider
from registry_resolver.embeddings.text import entry_embedding_text
from registry_resolver.registry.base import Registry
from registry_resolver.registry.cached import CachedRegistry
from registry_resolver.utils.hashing import compute_text_hash
from registry_resolver.utils.parallel import execute_parallel
from registry_resolver.utils.stats import ExecutionStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingJob:
    """One entry scheduled for (re)embedding."""

    identifier: str
    text: str
    text_hash: str
    reason: str  # "missing" or "stale"


def needs_embedding(entry: RegistryEntry) -> str | None:
    """Return "missing", "stale" or None for an entry."""
    text = entry_embedding_text(entry)
    if not text:
        return None
    if not entry.embedding:
        return "missing"
    if entry.embedding_text_hash != compute_text_hash(text):
        return "stale"
    return None


def find_embedding_jobs(registry: Registry, kind: EntityKind | None = None) -> list[EmbeddingJob]:
    """List entries whose embedding is missing or out of date."""
    jobs = []
    for entry in registry.iter_entries(kind):
        reason = needs_embedding(entry)
        if reason is None:
            continue
        text = entry_embedding_text(entry)
        jobs.append(EmbeddingJob(entry.identifier, text, compute_text_hash(text), reason))
    return jobs


def refresh_embeddings(
    registry: Registry,
    provider: EmbeddingProvider | None,
    kind: EntityKind | None = None,
    batch_size: int = EMBEDDING_BATCH_SIZE,
    max_workers: int = DEFAULT_WORKERS,
    execute: bool = True,
    show_progress: bool = True,
) -> ExecutionStats:
    """
    Regenerate missing and stale embeddings.

    Args:
        registry: Registry to read entries from and write embeddings to
        provider: Embedding provider (batch embedding is used; unused in dry runs)
        kind: Restrict to one entity kind
        batch_size: Texts per provider batch call
        max_workers: Concurrent provider calls
        execute: When False, only count what would be done
        show_progress: Show a progress bar over batches

    Returns:
        ExecutionStats with keys: pending, missing, stale, embedded, failed
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    jobs = find_embedding_jobs(registry, kind)
    stats = ExecutionStats(pending=len(jobs), missing=0, stale=0, embedded=0, failed=0)
    for job in jobs:
        stats.increment(job.reason)

    logger.info(
        f"{len(jobs)} entries need embeddings "
        f"({stats['missing']} missing, {stats['stale']} stale)"
    )
    if not execute or not jobs:
        return stats
    if provider is None:
        raise ValueError("An embedding provider is required to refresh embeddings")

    batches = [jobs[i : i + batch_size] for i in range(0, len(jobs), batch_size)]

    def _process(batch: list[EmbeddingJob]) -> int:
        embeddings = provider.embed_batch([job.text for job in batch])
        written = 0
        for job, embedding in zip(batch, embeddings):
            if embedding is None:
                stats.increment("failed")
                continue
            registry.update_embedding(job.identifier, embedding, job.text_hash)
            written += 1
        stats.increment("embedded", written)
        return written

    def _on_error(batch: list[EmbeddingJob], error: Exception) -> None:
        # The whole batch is lost; execute_parallel already counts one failure
        stats.increment("failed", len(batch) - 1)
        logger.warning(f"Embedding batch of {len(batch)} entries failed: {error}")

    execute_parallel(
        batches,
        _process,
        max_workers=max_workers,
        desc="Embedding batches",
        unit="batch",
        show_progress=show_progress,
        error_handler=_on_error,
        stats=stats,
    )

    if stats["embedded"] and isinstance(registry, CachedRegistry):
        registry.invalidate()

    logger.info(f"Embedding refresh complete: {stats}")
    return stats
