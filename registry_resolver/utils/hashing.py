"""
Hashing utilities for registry_resolver.

Used to detect when a registry entry's embedding source text has changed
and to key cached query embeddings.
"""

import hashlib


def compute_text_hash(text: str) -> str:
    """
    Compute SHA256 hash of text for change detection.

    Args:
        text: Text to hash

    Returns:
        SHA256 hex digest of normalized text, or empty string if text is empty
    """
    if not text:
        return ""
    normalized = text.strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
