"""
Embedding Provider port and implementations.

The resolution path only embeds one query text at a time; batch embedding
exists for registry maintenance. Every failure (API error, timeout, wrong
dimension) surfaces as ProviderError so callers can degrade to lexical-only
retrieval.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import openai

from registry_resolver.cache import AppCache
from registry_resolver.config import Settings
from registry_resolver.constants import (
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
    QUERY_EMBEDDING_CACHE_TTL_DAYS,
)
from registry_resolver.embeddings.openai_client import (
    create_embedding,
    create_embeddings_batch,
    get_openai_client,
)
from registry_resolver.exceptions import ProviderError
from registry_resolver.similarity.cosine import validate_embedding
from registry_resolver.utils.hashing import compute_text_hash

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract embedding provider."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier (part of every cache key)."""
        ...

    @abstractmethod
    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        """
        Embed one text.

        Raises:
            ProviderError: Provider unavailable, timed out or returned an invalid vector
        """
        ...

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        """Embed many texts; failed or empty texts come back as None."""
        ...


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API."""

    def __init__(
        self,
        client=None,
        model: str = EMBEDDING_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
        timeout_seconds: float = 10.0,
    ):
        """
        Args:
            client: OpenAI client (created lazily from settings when None)
            model: Embedding model name
            dimension: Expected vector length
            timeout_seconds: Default per-request timeout
        """
        self._client = client
        self._model = model
        self.dimension = dimension
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIEmbeddingProvider:
        return cls(
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout_seconds=settings.embedding_timeout_seconds,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = get_openai_client(timeout=self.timeout_seconds)
            except ValueError as e:
                raise ProviderError(f"Embedding client unavailable: {e}") from e
        return self._client

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        if not text or not text.strip():
            raise ProviderError("Cannot embed empty text")

        effective = self.timeout_seconds if timeout is None else min(timeout, self.timeout_seconds)
        try:
            embedding = create_embedding(self.client, text, self._model, timeout=effective)
        except openai.APITimeoutError as e:
            raise ProviderError(f"Embedding request timed out after {effective:.1f}s") from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Embedding request failed: {e}") from e
        except (IndexError, AttributeError, TypeError) as e:
            raise ProviderError(f"Malformed embedding response: {e!r}") from e

        if embedding is None or not validate_embedding(embedding, self.dimension):
            raise ProviderError(f"Embedding provider returned an invalid vector for model {self._model}")
        return embedding

    def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        try:
            embeddings = create_embeddings_batch(self.client, texts, self._model)
        except openai.OpenAIError as e:
            raise ProviderError(f"Batch embedding failed: {e}") from e
        return [e if e is not None and validate_embedding(e, self.dimension) else None for e in embeddings]


class CachedEmbeddingProvider(EmbeddingProvider):
    """
    Query embedding cache in front of another provider.

    Keyed by model and text hash, so repeated identical queries never re-embed.
    Batch calls pass straight through.
    """

    NAMESPACE = "query_embeddings"

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: AppCache,
        ttl_days: int = QUERY_EMBEDDING_CACHE_TTL_DAYS,
    ):
        self.provider = provider
        self.cache = cache
        self.ttl_days = ttl_days

    @property
    def model(self) -> str:
        return self.provider.model

    def _key(self, text: str) -> str:
        return f"{self.provider.model}:{compute_text_hash(text)}"

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        key = self._key(text)
        cached = self.cache.get(self.NAMESPACE, key)
        if cached is not None:
            return cached

        embedding = self.provider.embed(text, timeout=timeout)
        self.cache.set(self.NAMESPACE, key, embedding, ttl_days=self.ttl_days)
        return embedding

    def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        return self.provider.embed_batch(texts)
