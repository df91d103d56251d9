"""
Caching layer using diskcache.

Provides a namespaced key/value store with optional expiry. The engine never
creates one implicitly: callers construct an AppCache and pass it to the
components that need it (registry cache, query embedding cache).
"""

import logging
from pathlib import Path
from typing import Any

import diskcache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path("data/cache")

# 1 GB is ample for registry rows and query vectors
DEFAULT_CACHE_SIZE_LIMIT = 1024 * 1024 * 1024


class AppCache:
    """Namespaced cache using diskcache (SQLite-backed, safe across threads)."""

    def __init__(
        self,
        cache_dir: Path = DEFAULT_CACHE_DIR,
        timeout: float = 30.0,
        size_limit: int = DEFAULT_CACHE_SIZE_LIMIT,
    ):
        """
        Initialize cache.

        Args:
            cache_dir: Directory for cache files
            timeout: Timeout in seconds for acquiring the database lock
            size_limit: Maximum cache size in bytes; least-recently-stored
                        entries are evicted when it is reached
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._cache = diskcache.Cache(
            str(self.cache_dir),
            timeout=timeout,
            size_limit=size_limit,
        )

    def _make_key(self, namespace: str, key: str) -> str:
        return f"{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Any | None:
        """Get a value from cache (None when missing or expired)."""
        return self._cache.get(self._make_key(namespace, key))

    def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        ttl_days: int | None = None,
    ) -> None:
        """Set a value in cache with optional expiry."""
        expire = ttl_seconds
        if expire is None and ttl_days:
            expire = ttl_days * 86400
        self._cache.set(self._make_key(namespace, key), value, expire=expire)

    def delete(self, namespace: str, key: str) -> bool:
        """Delete a value from cache."""
        return bool(self._cache.delete(self._make_key(namespace, key)))

    def clear_namespace(self, namespace: str) -> int:
        """Clear all keys in a namespace."""
        prefix = f"{namespace}:"
        keys_to_delete = [key for key in self._cache if key.startswith(prefix)]
        for key in keys_to_delete:
            self._cache.delete(key)
        return len(keys_to_delete)

    def count(self, namespace: str | None = None) -> int:
        """Count entries, optionally filtered by namespace."""
        if namespace is None:
            return len(self._cache)
        prefix = f"{namespace}:"
        return sum(1 for key in self._cache if key.startswith(prefix))

    def stats(self) -> dict:
        """Get cache statistics."""
        namespaces: dict[str, int] = {}
        for key in self._cache:
            ns = key.split(":")[0] if ":" in key else "unknown"
            namespaces[ns] = namespaces.get(ns, 0) + 1

        volume_bytes = self._cache.volume()
        return {
            "total": len(self._cache),
            "by_namespace": namespaces,
            "size_mb": round(volume_bytes / (1024 * 1024), 2),
            "cache_dir": str(self.cache_dir),
        }

    def close(self):
        """Close the cache."""
        self._cache.close()
