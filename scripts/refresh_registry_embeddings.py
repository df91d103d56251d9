#!/usr/bin/env python3
"""
Regenerate missing and stale registry embeddings in Neo4j.

This script:
1. Ensures the registry constraints and vector index exist
2. Finds entries whose embedding is missing or built from outdated text
3. Re-embeds them in token-bounded batches over a bounded worker pool
4. Invalidates the registry cache and reports embedding coverage

Usage:
    python scripts/refresh_registry_embeddings.py            # Dry-run (plan only)
    python scripts/refresh_registry_embeddings.py --execute  # Actually create embeddings
"""

import argparse
import sys

from registry_resolver.cache import AppCache
from registry_resolver.cli import print_dry_run_header, print_execute_header, setup_logging
from registry_resolver.config import get_settings
from registry_resolver.domain.models import EntityKind
from registry_resolver.embeddings import (
    OpenAIEmbeddingProvider,
    get_openai_client,
    suppress_http_logging,
)
from registry_resolver.embeddings.maintenance import refresh_embeddings
from registry_resolver.neo4j import create_registry_constraints, get_neo4j_driver, verify_connection
from registry_resolver.registry import CachedRegistry, Neo4jRegistry


def main():
    """Run the registry embedding refresh."""
    parser = argparse.ArgumentParser(description="Regenerate missing and stale registry embeddings")
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Actually create embeddings (default is dry-run)",
    )
    parser.add_argument(
        "--kind",
        choices=[k.value for k in EntityKind],
        help="Only refresh one entity kind (default: all)",
    )
    parser.add_argument("--batch-size", type=int, default=100, help="Texts per embedding call")
    parser.add_argument("--workers", type=int, default=None, help="Concurrent embedding calls")
    args = parser.parse_args()

    logger = setup_logging("refresh_registry_embeddings", execute=args.execute)
    suppress_http_logging()
    settings = get_settings()
    kind = EntityKind(args.kind) if args.kind else None

    try:
        driver = get_neo4j_driver()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    if not verify_connection(driver):
        driver.close()
        sys.exit(1)

    cache = AppCache(settings.cache_dir)
    registry = CachedRegistry(
        Neo4jRegistry(
            driver,
            database=settings.neo4j_database,
            label=settings.registry_label,
            vector_index=settings.registry_vector_index,
        ),
        cache,
        ttl_seconds=settings.registry_cache_ttl_seconds,
    )

    try:
        before = registry.embedding_stats(kind)
        logger.info(
            f"Embedding coverage: {before.with_embedding:,}/{before.total:,} "
            f"({before.percent:.1f}%), {before.without_embedding:,} without"
        )

        if not args.execute:
            print_dry_run_header("Registry Embedding Refresh", logger)
            stats = refresh_embeddings(registry, provider=None, kind=kind, execute=False)
            logger.info(
                f"Would embed {stats['pending']:,} entries "
                f"({stats['missing']:,} missing, {stats['stale']:,} stale)"
            )
            logger.info("To execute, run: python scripts/refresh_registry_embeddings.py --execute")
            return

        print_execute_header("Registry Embedding Refresh", logger)
        create_registry_constraints(
            driver,
            database=settings.neo4j_database,
            label=settings.registry_label,
            vector_index=settings.registry_vector_index,
            dimension=settings.embedding_dimension,
            logger=logger,
        )

        try:
            client = get_openai_client(timeout=settings.embedding_timeout_seconds)
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)

        provider = OpenAIEmbeddingProvider(
            client=client,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout_seconds=settings.embedding_timeout_seconds,
        )
        stats = refresh_embeddings(
            registry,
            provider,
            kind=kind,
            batch_size=args.batch_size,
            max_workers=args.workers or settings.max_workers,
        )
        logger.info(f"Embedded: {stats['embedded']:,}, failed: {stats['failed']:,}")

        after = registry.embedding_stats(kind)
        logger.info(
            f"Embedding coverage: {after.with_embedding:,}/{after.total:,} ({after.percent:.1f}%)"
        )
    finally:
        cache.close()
        driver.close()


if __name__ == "__main__":
    main()
