"""
Cosine similarity computation utilities.

Provides efficient cosine similarity computation using NumPy. Used by the
in-process registry for vector search and by the scorer when a pre-filtered
candidate pool needs its similarity computed locally.
"""

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def validate_embedding(
    embedding: Sequence[float] | None,
    expected_dimension: int | None = None,
) -> bool:
    """
    Validate an embedding vector.

    Args:
        embedding: Embedding vector to validate
        expected_dimension: Expected dimension (skipped when None)

    Returns:
        True if valid, False otherwise
    """
    if embedding is None:
        return False
    if not isinstance(embedding, (list, tuple, np.ndarray)):
        return False
    if len(embedding) == 0:
        return False
    if expected_dimension is not None and len(embedding) != expected_dimension:
        logger.warning(f"Invalid embedding dimension: {len(embedding)} != {expected_dimension}")
        return False
    arr = np.asarray(embedding, dtype=np.float64)
    if not np.all(np.isfinite(arr)):
        logger.warning("Embedding contains NaN or Inf values")
        return False
    return True


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors (0.0 when either is zero)."""
    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    if a_arr.shape != b_arr.shape:
        raise ValueError(f"Dimension mismatch: {a_arr.shape} vs {b_arr.shape}")
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))


def top_k_by_similarity(
    query: Sequence[float],
    matrix: NDArray[np.float64],
    k: int,
) -> list[tuple[int, float]]:
    """
    Rank the rows of a matrix by cosine similarity to a query vector.

    Args:
        query: Query vector
        matrix: N x D matrix of candidate vectors
        k: Maximum number of rows to return

    Returns:
        List of (row_index, similarity), most similar first. Ties keep row order.
    """
    if k <= 0 or matrix.size == 0:
        return []

    q = np.asarray(query, dtype=np.float64)
    if matrix.shape[1] != q.shape[0]:
        raise ValueError(f"Dimension mismatch: matrix has {matrix.shape[1]}, query has {q.shape[0]}")

    q_norm = np.linalg.norm(q)
    if q_norm == 0:
        return []

    norms = np.linalg.norm(matrix, axis=1)
    norms[norms == 0] = 1  # Avoid division by zero; zero rows score 0
    similarities = (matrix @ q) / (norms * q_norm)

    # Stable sort so equal scores keep insertion order (deterministic results)
    order = np.argsort(-similarities, kind="stable")[:k]
    return [(int(i), float(similarities[i])) for i in order]
