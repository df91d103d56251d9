"""
Tests for the verification recorder.
"""

from datetime import UTC, datetime
from unittest.mock import Mock

from registry_resolver.domain.models import MatchMethod
from registry_resolver.entity_resolution.verification import VerificationRecorder
from registry_resolver.exceptions import StorageError

FIXED_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestVerificationRecorder:
    """Tests for VerificationRecorder.record()."""

    def test_confident_match_recorded(self, registry):
        recorder = VerificationRecorder(registry, clock=lambda: FIXED_TIME)

        assert recorder.record("C100", MatchMethod.VECTOR, 0.91) is True

        state = registry.get("C100").verification
        assert state.verified is True
        assert state.last_verified_at == FIXED_TIME
        assert state.last_verified_method == "vector"
        assert state.verification_confidence == 0.91

    def test_threshold_is_inclusive(self, registry):
        assert VerificationRecorder(registry).record("C100", MatchMethod.VECTOR_LLM, 0.7) is True

    def test_weak_match_not_recorded(self, registry):
        recorder = VerificationRecorder(registry)

        assert recorder.record("C100", MatchMethod.VECTOR_LOW_CONFIDENCE, 0.62) is False
        assert registry.get("C100").verification.verified is False
        assert registry.calls["record_verification"] == 0

    def test_no_identifier(self, registry):
        assert VerificationRecorder(registry).record(None, MatchMethod.UNMATCHED, 0.0) is False

    def test_write_failure_swallowed(self):
        registry = Mock()
        registry.record_verification.side_effect = StorageError("read-only replica")

        assert VerificationRecorder(registry).record("C100", MatchMethod.EXACT, 1.0) is False
        registry.record_verification.assert_called_once()

    def test_unexpected_failure_swallowed(self):
        registry = Mock()
        registry.record_verification.side_effect = RuntimeError("boom")

        assert VerificationRecorder(registry).record("C100", MatchMethod.EXACT, 1.0) is False
