"""Embedding providers, text projections and OpenAI helpers."""

from registry_resolver.constants import EMBEDDING_DIMENSION, EMBEDDING_MODEL
from registry_resolver.embeddings.openai_client import (
    create_embedding,
    create_embeddings_batch,
    get_openai_client,
    suppress_http_logging,
)
from registry_resolver.embeddings.provider import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from registry_resolver.embeddings.text import entry_embedding_text, query_embedding_text

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "CachedEmbeddingProvider",
    "entry_embedding_text",
    "query_embedding_text",
    "create_embedding",
    "create_embeddings_batch",
    "get_openai_client",
    "suppress_http_logging",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSION",
]
