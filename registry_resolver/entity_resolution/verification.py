"""
Verification Recorder.

Persists the provenance of accepted matches on the registry entry. Only
confident matches (>= 0.7) mark an entry as verified; weaker matches are
returned to the caller but leave the registry untouched. A failed write is
logged and swallowed: it never changes the resolution result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from registry_resolver.constants import VERIFICATION_MIN_CONFIDENCE
from registry_resolver.domain.models import MatchMethod
from registry_resolver.exceptions import RecorderError
from registry_resolver.registry.base import Registry

logger = logging.getLogger(__name__)


class VerificationRecorder:
    """Writes verification metadata for accepted matches."""

    def __init__(
        self,
        registry: Registry,
        min_confidence: float = VERIFICATION_MIN_CONFIDENCE,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry
        self.min_confidence = min_confidence
        self.clock = clock or (lambda: datetime.now(UTC))

    def record(self, identifier: str | None, method: MatchMethod, confidence: float) -> bool:
        """
        Record a resolution outcome.

        Args:
            identifier: Matched registry identifier (nothing happens when None)
            method: How the match was reached
            confidence: Match confidence

        Returns:
            True when verification metadata was written
        """
        if not identifier or confidence < self.min_confidence:
            return False

        try:
            self._write(identifier, method, confidence)
        except RecorderError as e:
            logger.warning(f"Verification write failed for {identifier}: {e}")
            return False
        return True

    def _write(self, identifier: str, method: MatchMethod, confidence: float) -> None:
        try:
            self.registry.record_verification(identifier, method.value, confidence, self.clock())
        except Exception as e:
            raise RecorderError(f"Could not record verification: {e}") from e
        logger.debug(f"Verified {identifier} via {method.value} ({confidence:.3f})")
