"""
Shared OpenAI client setup and embedding creation functions.

This module provides common functionality for creating embeddings:
- OpenAI client initialization (with request timeout and retries)
- create_embedding for single texts
- create_embeddings_batch with token-bounded batching
- Token counting and truncation
- HTTP logging suppression
"""

import logging
import time

import tiktoken
from openai import OpenAI
from tqdm import tqdm

from registry_resolver.config import get_openai_api_key
from registry_resolver.constants import EMBEDDING_MODEL

logger = logging.getLogger(__name__)

# Token limit for text-embedding-3-small/large is 8192; truncate below it
EMBEDDING_TRUNCATE_TOKENS = 8000

# Per-request token budget when batching (API hard limit is 300K per request)
MAX_TOKENS_PER_BATCH = 40_000

# Fallback encoding for models tiktoken does not know
DEFAULT_ENCODING = "cl100k_base"


def get_openai_client(timeout: float | None = None, max_retries: int = 2) -> OpenAI:
    """
    Get OpenAI client instance.

    Args:
        timeout: Default request timeout in seconds (client default when None)
        max_retries: Retries for connection errors, 429 and 5xx responses
    """
    api_key = get_openai_api_key()  # Raises ValueError if not set
    if timeout is None:
        return OpenAI(api_key=api_key, max_retries=max_retries)
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)


def _encoding(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding(DEFAULT_ENCODING)


def count_tokens(text: str, model: str = EMBEDDING_MODEL) -> int:
    """
    Count tokens in text using tiktoken.

    Args:
        text: Text to count tokens for
        model: Model name (determines encoding)

    Returns:
        Number of tokens
    """
    if not text:
        return 0
    return len(_encoding(model).encode(text))


def truncate_to_token_limit(
    text: str, max_tokens: int = EMBEDDING_TRUNCATE_TOKENS, model: str = EMBEDDING_MODEL
) -> str:
    """
    Truncate text to fit within token limit, cutting at token boundaries.

    Registry projections are short; truncation only guards against
    pathological alias lists.
    """
    if not text:
        return text

    encoding = _encoding(model)
    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text

    truncated_text = encoding.decode(tokens[:max_tokens])
    logger.warning(
        f"TRUNCATION: Text reduced from {len(tokens):,} tokens to {max_tokens:,} tokens "
        f"({len(text):,} chars → {len(truncated_text):,} chars)"
    )
    return truncated_text


def create_embedding(
    client: OpenAI,
    text: str,
    model: str = EMBEDDING_MODEL,
    timeout: float | None = None,
) -> list[float] | None:
    """
    Create an embedding for a single text.

    Args:
        client: OpenAI client instance
        text: Text to embed
        model: Embedding model name
        timeout: Per-request timeout in seconds (client default when None)

    Returns:
        Embedding vector, or None for empty text

    Raises:
        openai.OpenAIError: On API failure or timeout
    """
    if not text or not text.strip():
        return None

    text = truncate_to_token_limit(text.strip(), EMBEDDING_TRUNCATE_TOKENS, model)
    if timeout is None:
        response = client.embeddings.create(model=model, input=text)
    else:
        response = client.embeddings.create(model=model, input=text, timeout=timeout)
    return list(response.data[0].embedding)


def create_embeddings_batch(
    client: OpenAI,
    texts: list[str],
    model: str = EMBEDDING_MODEL,
    max_tokens_per_batch: int = MAX_TOKENS_PER_BATCH,
    show_progress: bool = False,
) -> list[list[float] | None]:
    """
    Create embeddings for multiple texts in token-bounded batches.

    Texts are added to a request until adding another would exceed
    max_tokens_per_batch. When a batch request fails, its texts are retried
    one at a time; texts that still fail come back as None.

    Args:
        client: OpenAI client instance
        texts: List of texts to embed
        model: Embedding model name
        max_tokens_per_batch: Max tokens per API call
        show_progress: Show a tqdm bar for large workloads

    Returns:
        List of embedding vectors in input order (None for empty or failed texts)
    """
    if not texts:
        return []

    results: list[list[float] | None] = [None] * len(texts)

    # (original_idx, text, token_count)
    processed: list[tuple[int, str, int]] = []
    for i, text in enumerate(texts):
        if text and text.strip():
            truncated = truncate_to_token_limit(text.strip(), EMBEDDING_TRUNCATE_TOKENS, model)
            processed.append((i, truncated, count_tokens(truncated, model)))

    if not processed:
        return results

    batches: list[list[tuple[int, str, int]]] = []
    current_batch: list[tuple[int, str, int]] = []
    current_tokens = 0
    for item in processed:
        if current_batch and current_tokens + item[2] > max_tokens_per_batch:
            batches.append(current_batch)
            current_batch = []
            current_tokens = 0
        current_batch.append(item)
        current_tokens += item[2]
    if current_batch:
        batches.append(current_batch)

    logger.debug(
        f"Token-based batching: {len(processed)} texts -> {len(batches)} batches "
        f"(max {max_tokens_per_batch:,} tokens per batch)"
    )

    start_time = time.time()
    with tqdm(
        total=len(processed),
        desc="Embedding texts",
        unit="text",
        disable=not show_progress or len(batches) < 5,
    ) as pbar:
        for batch_idx, batch in enumerate(batches):
            indices = [item[0] for item in batch]
            batch_texts = [item[1] for item in batch]

            try:
                response = client.embeddings.create(model=model, input=batch_texts)
                for i, embedding_obj in enumerate(response.data):
                    results[indices[i]] = list(embedding_obj.embedding)
                pbar.update(len(batch_texts))
            except Exception as e:
                logger.warning(
                    f"Batch {batch_idx + 1}/{len(batches)} embedding failed: {e}. "
                    f"Retrying {len(batch_texts)} texts individually"
                )
                for original_idx, text in zip(indices, batch_texts):
                    try:
                        results[original_idx] = create_embedding(client, text, model)
                    except Exception as e2:
                        logger.warning(f"Individual embedding also failed for index {original_idx}: {e2}")
                    pbar.update(1)

    elapsed = time.time() - start_time
    done = sum(1 for r in results if r is not None)
    logger.debug(f"Embedded {done}/{len(processed)} texts in {elapsed:.1f}s")
    return results


def suppress_http_logging():
    """
    Suppress verbose HTTP logging from OpenAI, httpx, and httpcore.

    Safe to call redundantly after setup_logging().
    """
    logging.getLogger("httpx").setLevel(logging.ERROR)
    logging.getLogger("openai").setLevel(logging.ERROR)
    logging.getLogger("httpcore").setLevel(logging.ERROR)
