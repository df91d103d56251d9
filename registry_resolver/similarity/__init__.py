"""Vector similarity helpers."""

from registry_resolver.similarity.cosine import (
    cosine_similarity,
    top_k_by_similarity,
    validate_embedding,
)

__all__ = ["cosine_similarity", "top_k_by_similarity", "validate_embedding"]
