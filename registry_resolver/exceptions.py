"""
Error taxonomy for entity resolution.

Only StorageError on the primary read path and DeadlineExceededError ever
leave EntityResolver.resolve(); every other kind degrades to a
lower-confidence or no-match result.
"""


class ResolutionError(Exception):
    """Base exception for resolution engine errors."""


class InputError(ResolutionError):
    """Query has no usable field (no identifier, email or name)."""


class ProviderError(ResolutionError):
    """Embedding provider unavailable, timed out or returned an invalid vector."""


class OracleError(ResolutionError):
    """Arbitration oracle unavailable, timed out or returned a malformed decision."""


class StorageError(ResolutionError):
    """Registry read or write failed."""


class RecorderError(ResolutionError):
    """Verification metadata could not be written."""


class DeadlineExceededError(ResolutionError):
    """The caller-supplied deadline elapsed before the resolution completed."""
