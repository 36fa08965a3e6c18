"""Tests for the Soulweaver error system."""

from soulweaver.core.errors import (
    ErrorCode,
    ProviderRequiredError,
    SoulweaverError,
    SynthesisInProgressError,
    config_error,
    provider_error,
)


class TestErrorCode:
    def test_categories(self):
        assert ErrorCode.ORACLE_UNAVAILABLE.category == "provider"
        assert ErrorCode.THRESHOLD_INVALID.category == "synthesis"
        assert ErrorCode.SYNTHESIS_IN_PROGRESS.category == "cycle"
        assert ErrorCode.CONFIG_INVALID.category == "config"

    def test_recoverability(self):
        assert ErrorCode.SYNTHESIS_IN_PROGRESS.is_recoverable
        assert ErrorCode.ORACLE_UNAVAILABLE.is_recoverable
        assert not ErrorCode.PROVIDER_REQUIRED.is_recoverable


class TestSoulweaverError:
    def test_message_names_operation_and_entity(self):
        err = provider_error(
            ErrorCode.ORACLE_UNAVAILABLE,
            operation="match_best",
            entity="sig-42",
            detail="timeout",
        )

        assert str(err) == "[SW-1002] Semantic oracle failed during match_best for 'sig-42': timeout"
        assert err.operation == "match_best"
        assert err.error_id == "SW-1002"

    def test_provider_required(self):
        err = ProviderRequiredError("classifier", "add_signal")

        assert "classifier" in err.message
        assert "add_signal" in err.message
        assert err.recovery_hints[0] == "Pass a classifier explicitly when constructing the component"

    def test_lock_contention(self):
        err = SynthesisInProgressError("/work", "1234", "/work/.soulweaver/soul-synthesis.lock")

        assert "1234" in str(err)
        assert "/work" in str(err)
        assert err.is_recoverable
        assert err.to_dict()["category"] == "cycle"

    def test_missing_context_keeps_template(self):
        err = SoulweaverError(ErrorCode.SOUL_WRITE_FAILED)
        assert "{entity}" in err.message

    def test_config_error(self):
        err = config_error("matching.threshold", "out of range")
        assert err.code == ErrorCode.CONFIG_INVALID
        assert "matching.threshold" in str(err)

    def test_cause_is_kept(self):
        cause = ValueError("bad")
        err = SoulweaverError(ErrorCode.SIGNAL_INVALID, context={}, cause=cause)
        assert err.cause is cause
