"""
Unit Tests for the OTP Engine
=============================
Generation, verification, rate limiting, cleanup and delivery.
"""

import threading
import time
from datetime import timedelta

import pytest

from hacktrack_core import metrics
from hacktrack_core.otp import (
    AttemptsExceeded,
    ConcurrentOperation,
    DeliveryFailed,
    InvalidCode,
    InvalidInput,
    OTPAlreadyUsed,
    OTPConfig,
    OTPEngine,
    OTPErrorKind,
    OTPExpired,
    OTPNotFound,
    RateLimited,
)

from conftest import EMAIL, BlockingClock, ExplodingNotifier, RecordingNotifier


def _codes(monkeypatch, *codes):
    """Make the engine hand out ``codes`` in order."""
    sequence = iter(codes)
    monkeypatch.setattr(
        "hacktrack_core.otp.engine.generate_otp",
        lambda length: next(sequence),
    )


class TestRequestOTP:
    """Tests for code generation and storage."""

    def test_generates_six_digit_code(self, engine, fake_clock):
        """Should store a 6-digit code expiring in 10 minutes."""
        result = engine.request_otp(EMAIL)

        assert result.debug_code.isdigit()
        assert len(result.debug_code) == 6
        assert result.expires_at == fake_clock.now + timedelta(minutes=10)
        assert result.resend_count == 0
        assert result.is_resend is False

    def test_code_hidden_without_insecure_debug(self, make_engine):
        """Should never return the code unless insecure_debug is set."""
        engine = make_engine(insecure_debug=False)

        result = engine.request_otp(EMAIL)

        assert result.debug_code is None
        assert "debug" not in result.to_dict()
        assert "code" not in repr(result)

    def test_repeated_requests_keep_one_record(self, make_engine):
        """N requests leave exactly one record with resend_count N-1."""
        engine = make_engine(rate_limit_enabled=False)

        for _ in range(5):
            result = engine.request_otp(EMAIL)

        assert result.resend_count == 4
        assert engine.get_stats()["total_otps"] == 1
        assert engine.snapshot(EMAIL).resend_count == 4

    def test_replacement_resets_attempts(self, engine, monkeypatch):
        """A new code starts with zero attempts."""
        _codes(monkeypatch, "111111", "222222")
        engine.request_otp(EMAIL)
        with pytest.raises(InvalidCode):
            engine.verify_otp(EMAIL, "999999")

        engine.request_otp(EMAIL)

        record = engine.snapshot(EMAIL)
        assert record.attempts == 0
        assert record.used is False

    def test_identifier_is_normalized(self, engine):
        """Should treat case and surrounding whitespace as the same email."""
        code = engine.request_otp("  Alice@Example.COM ").debug_code

        result = engine.verify_otp(EMAIL, code)

        assert result.identifier == EMAIL

    def test_empty_identifier_rejected(self, engine):
        with pytest.raises(InvalidInput):
            engine.request_otp("   ")

    def test_concurrent_generation_rejected(self, engine):
        """A generation already in flight blocks a second one."""
        engine._processing.add(("generate", EMAIL))

        with pytest.raises(ConcurrentOperation) as exc_info:
            engine.request_otp(EMAIL)

        assert exc_info.value.kind is OTPErrorKind.CONCURRENT_OPERATION
        assert engine.snapshot(EMAIL) is None

    def test_guard_released_after_failure(self, make_engine):
        """The in-flight marker is removed even when generation fails."""
        engine = make_engine(max_requests_per_window=1)
        engine.request_otp(EMAIL)

        with pytest.raises(RateLimited):
            engine.request_otp(EMAIL)

        assert engine.get_stats()["processing_operations"] == 0


class TestVerifyOTP:
    """Tests for verification and attempt tracking."""

    def test_verify_success_is_one_shot(self, engine, fake_clock):
        """A correct code verifies once, then the record is gone."""
        code = engine.request_otp(EMAIL).debug_code

        result = engine.verify_otp(EMAIL, code)

        assert result.identifier == EMAIL
        assert result.verified_at == fake_clock.now
        assert engine.snapshot(EMAIL) is None

        with pytest.raises(OTPNotFound):
            engine.verify_otp(EMAIL, code)

    def test_wrong_code_reports_attempts_remaining(self, engine, monkeypatch):
        _codes(monkeypatch, "482913")
        engine.request_otp(EMAIL)

        with pytest.raises(InvalidCode) as exc_info:
            engine.verify_otp(EMAIL, "000000")

        assert exc_info.value.attempts_remaining == 4
        assert "4 attempts remaining" in exc_info.value.message
        assert engine.snapshot(EMAIL).attempts == 1

    def test_attempt_exhaustion(self, make_engine, monkeypatch):
        """The k-th wrong code deletes the record."""
        _codes(monkeypatch, "482913")
        engine = make_engine(max_attempts=3)
        engine.request_otp(EMAIL)

        for remaining in (2, 1):
            with pytest.raises(InvalidCode) as exc_info:
                engine.verify_otp(EMAIL, "000000")
            assert exc_info.value.attempts_remaining == remaining

        with pytest.raises(AttemptsExceeded):
            engine.verify_otp(EMAIL, "000000")

        assert engine.snapshot(EMAIL) is None
        with pytest.raises(OTPNotFound):
            engine.verify_otp(EMAIL, "482913")

    def test_expired_code_is_removed(self, engine, fake_clock):
        """Past the expiry window the correct code fails and the record goes."""
        code = engine.request_otp(EMAIL).debug_code
        fake_clock.advance(601)

        with pytest.raises(OTPExpired):
            engine.verify_otp(EMAIL, code)

        with pytest.raises(OTPNotFound):
            engine.verify_otp(EMAIL, code)

    def test_code_valid_until_expiry(self, engine, fake_clock):
        code = engine.request_otp(EMAIL).debug_code
        fake_clock.advance(600)

        assert engine.verify_otp(EMAIL, code).identifier == EMAIL

    def test_used_record_is_rejected(self, engine):
        """A record marked used is never accepted and is dropped."""
        code = engine.request_otp(EMAIL).debug_code
        engine._otps[EMAIL].used = True

        with pytest.raises(OTPAlreadyUsed):
            engine.verify_otp(EMAIL, code)

        assert engine.snapshot(EMAIL) is None

    @pytest.mark.parametrize("identifier,code", [
        ("", "123456"),
        (EMAIL, ""),
        (EMAIL, None),
        (EMAIL, "12345"),
        (EMAIL, "1234567"),
        (EMAIL, " 12345"),
        (EMAIL, "123456 "),
        (EMAIL, "12a456"),
    ])
    def test_invalid_input(self, engine, identifier, code):
        engine.request_otp(EMAIL)

        with pytest.raises(InvalidInput):
            engine.verify_otp(identifier, code)

        assert engine.snapshot(EMAIL).attempts == 0

    def test_padded_code_rejected(self, engine):
        """Should reject the right code with surrounding whitespace, uncounted."""
        code = engine.request_otp(EMAIL).debug_code

        with pytest.raises(InvalidInput):
            engine.verify_otp(EMAIL, code + " ")

        assert engine.snapshot(EMAIL).attempts == 0
        assert engine.verify_otp(EMAIL, code).identifier == EMAIL

    def test_missing_record(self, engine):
        with pytest.raises(OTPNotFound) as exc_info:
            engine.verify_otp(EMAIL, "123456")

        assert "request a new OTP" in exc_info.value.message

    def test_example_scenario(self, make_engine, monkeypatch, fake_clock):
        """a@b.com: wrong code, right code, then nothing left to verify."""
        _codes(monkeypatch, "482913")
        engine = make_engine()

        issued = engine.request_otp("a@b.com")
        assert issued.debug_code == "482913"
        assert issued.expires_at - fake_clock.now == timedelta(milliseconds=600000)

        with pytest.raises(InvalidCode) as exc_info:
            engine.verify_otp("a@b.com", "000000")
        assert exc_info.value.attempts_remaining == 4

        assert engine.verify_otp("a@b.com", "482913").verified_at == fake_clock.now

        with pytest.raises(OTPNotFound):
            engine.verify_otp("a@b.com", "482913")

    def test_concurrent_verification_rejected(self, make_engine, fake_clock):
        """While one verification runs, a second for the same email fails fast."""
        clock = BlockingClock(fake_clock)
        engine = make_engine(clock=clock)
        code = engine.request_otp(EMAIL).debug_code
        results = {}

        def first():
            results["first"] = engine.verify_otp(EMAIL, code)

        clock.armed = True
        worker = threading.Thread(target=first)
        worker.start()
        assert clock.entered.wait(5)

        try:
            with pytest.raises(ConcurrentOperation):
                engine.verify_otp(EMAIL, code)
        finally:
            clock.release.set()
            worker.join(5)

        assert results["first"].identifier == EMAIL
        assert engine.get_stats()["processing_operations"] == 0

    def test_guard_is_per_identifier_and_operation(self, engine):
        """An in-flight verification blocks neither other emails nor generation."""
        code = engine.request_otp("bob@example.com").debug_code
        engine._processing.add(("verify", EMAIL))

        assert engine.request_otp(EMAIL).resend_count == 0
        assert engine.verify_otp("bob@example.com", code).identifier == "bob@example.com"
        with pytest.raises(ConcurrentOperation):
            engine.verify_otp(EMAIL, "123456")

    def test_verified_counter(self, engine):
        code = engine.request_otp(EMAIL).debug_code
        before = metrics.get_event_count("verified")

        engine.verify_otp(EMAIL, code)

        assert metrics.get_event_count("verified") == before + 1


class TestResendOTP:
    """Tests for resend semantics."""

    def test_resend_replaces_code(self, engine, monkeypatch):
        _codes(monkeypatch, "111111", "222222")
        engine.request_otp(EMAIL)

        result = engine.resend_otp(EMAIL)

        assert result.is_resend is True
        assert result.resend_count == 1
        with pytest.raises(InvalidCode):
            engine.verify_otp(EMAIL, "111111")
        assert engine.verify_otp(EMAIL, "222222").identifier == EMAIL

    def test_resend_without_prior_code(self, engine):
        result = engine.resend_otp(EMAIL)

        assert result.resend_count == 0
        assert engine.snapshot(EMAIL) is not None

    def test_resend_counts_against_rate_limit(self, engine):
        engine.request_otp(EMAIL)
        engine.resend_otp(EMAIL)
        engine.resend_otp(EMAIL)

        with pytest.raises(RateLimited):
            engine.resend_otp(EMAIL)


class TestRateLimiting:
    """Tests for the per-identifier request quota."""

    def test_blocks_after_quota(self, engine):
        """The (m+1)-th request in a window is rejected."""
        for _ in range(3):
            engine.request_otp(EMAIL)

        with pytest.raises(RateLimited) as exc_info:
            engine.request_otp(EMAIL)

        assert exc_info.value.retry_after > 0
        assert exc_info.value.retry_after <= 900
        assert engine.snapshot(EMAIL).resend_count == 2

    def test_allows_after_window(self, engine, fake_clock):
        for _ in range(3):
            engine.request_otp(EMAIL)
        with pytest.raises(RateLimited):
            engine.request_otp(EMAIL)

        fake_clock.advance(900)

        result = engine.request_otp(EMAIL)
        assert result.resend_count == 3

    def test_retry_after_counts_down(self, engine, fake_clock):
        for _ in range(3):
            engine.request_otp(EMAIL)
        fake_clock.advance(300)

        with pytest.raises(RateLimited) as exc_info:
            engine.request_otp(EMAIL)

        assert exc_info.value.retry_after == 600

    def test_limits_are_per_identifier(self, make_engine):
        engine = make_engine(max_requests_per_window=1)
        engine.request_otp(EMAIL)

        assert engine.request_otp("bob@example.com").resend_count == 0

    def test_disabled_rate_limit(self, make_engine):
        engine = make_engine(rate_limit_enabled=False)

        for _ in range(10):
            engine.request_otp(EMAIL)

        assert engine.get_stats()["rate_limited_identifiers"] == 0


class TestCleanup:
    """Tests for the expiry sweep and administrative reset."""

    def test_cleanup_removes_expired(self, engine, fake_clock):
        engine.request_otp(EMAIL)
        fake_clock.advance(300)
        engine.request_otp("bob@example.com")
        fake_clock.advance(301)

        report = engine.cleanup()

        assert report.otps_removed == 1
        assert engine.snapshot(EMAIL) is None
        assert engine.snapshot("bob@example.com") is not None

    def test_cleanup_removes_stale_rate_limits(self, engine, fake_clock):
        engine.request_otp(EMAIL)
        fake_clock.advance(901)

        report = engine.cleanup()

        assert report.rate_limits_removed == 1
        assert report.otps_removed == 1
        assert engine.get_stats()["rate_limited_identifiers"] == 0

    def test_cleanup_keeps_active_blocks(self, engine, fake_clock):
        for _ in range(3):
            engine.request_otp(EMAIL)
        with pytest.raises(RateLimited):
            engine.request_otp(EMAIL)
        fake_clock.advance(60)

        report = engine.cleanup()

        assert report.rate_limits_removed == 0
        with pytest.raises(RateLimited):
            engine.request_otp(EMAIL)

    def test_clear_all_limits(self, engine):
        for _ in range(3):
            engine.request_otp(EMAIL)
        engine.request_otp("bob@example.com")
        engine._processing.add(("verify", "carol@example.com"))

        report = engine.clear_all_limits()

        assert report.otp_count == 2
        assert report.rate_limit_count == 2
        assert report.processing_count == 1
        stats = engine.get_stats()
        assert stats["total_otps"] == 0
        assert stats["rate_limited_identifiers"] == 0
        assert stats["processing_operations"] == 0
        assert engine.request_otp(EMAIL).resend_count == 0

    def test_stats(self, engine, fake_clock):
        engine.request_otp(EMAIL)
        fake_clock.advance(601)
        engine.request_otp("bob@example.com")

        stats = engine.get_stats()

        assert stats["total_otps"] == 2
        assert stats["active_otps"] == 1
        assert stats["config"]["max_attempts"] == 5

    def test_background_sweep(self, fake_clock):
        """The worker started on construction sweeps without any request."""
        engine = OTPEngine(
            OTPConfig(cleanup_interval_seconds=0.02),
            clock=fake_clock,
        )
        try:
            assert engine.is_running
            engine.request_otp(EMAIL)
            fake_clock.advance(601)

            deadline = time.monotonic() + 2
            while engine.snapshot(EMAIL) is not None and time.monotonic() < deadline:
                time.sleep(0.01)

            assert engine.snapshot(EMAIL) is None
        finally:
            engine.shutdown()

        assert not engine.is_running

    def test_sweep_errors_do_not_stop_worker(self, fake_clock, monkeypatch):
        calls = []

        def flaky_cleanup():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        with OTPEngine(OTPConfig(cleanup_interval_seconds=0.02), clock=fake_clock) as engine:
            monkeypatch.setattr(engine, "cleanup", flaky_cleanup)
            deadline = time.monotonic() + 2
            while len(calls) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)

            assert len(calls) >= 2
            assert engine.is_running


class TestDelivery:
    """Tests for notifier integration."""

    def test_code_delivered_to_notifier(self, make_engine):
        notifier = RecordingNotifier()
        engine = make_engine(notifier=notifier)

        result = engine.request_otp(EMAIL)

        identifier, code, context = notifier.sent[0]
        assert identifier == EMAIL
        assert code == result.debug_code
        assert context.is_resend is False
        assert context.expiration_minutes == 10
        assert result.delivery.delivered is True
        assert result.delivery.reference == "msg-1"

    def test_user_name_reaches_notifier(self, make_engine):
        notifier = RecordingNotifier()
        engine = make_engine(notifier=notifier)

        engine.request_otp(EMAIL, user_name="Alice")
        engine.resend_otp(EMAIL, user_name="Alice")

        assert [sent[2].user_name for sent in notifier.sent] == ["Alice", "Alice"]

    def test_resend_context(self, make_engine):
        notifier = RecordingNotifier()
        engine = make_engine(notifier=notifier)

        engine.request_otp(EMAIL)
        engine.resend_otp(EMAIL)

        assert notifier.sent[1][2].is_resend is True

    def test_failed_delivery_falls_back_to_log(self, make_engine):
        """The record stands and the code goes to the log channel."""
        engine = make_engine(notifier=RecordingNotifier(delivered=False))

        result = engine.request_otp(EMAIL)

        assert result.delivery.fallback is True
        assert result.delivery.channel == "log"
        assert result.delivery.error == "mailbox unavailable"
        assert engine.verify_otp(EMAIL, result.debug_code).identifier == EMAIL

    def test_raising_notifier_is_contained(self, make_engine):
        engine = make_engine(notifier=ExplodingNotifier())

        result = engine.request_otp(EMAIL)

        assert result.delivery.fallback is True
        assert "unreachable" in result.delivery.error
        assert engine.snapshot(EMAIL) is not None

    def test_fallback_disabled(self, make_engine):
        engine = make_engine(notifier=RecordingNotifier(delivered=False), log_fallback=False)

        result = engine.request_otp(EMAIL)

        assert result.delivery.delivered is False
        assert result.delivery.fallback is False

    def test_raise_on_delivery_failure(self, make_engine):
        """Opt-in strict mode reports the failure but keeps the record."""
        engine = make_engine(
            notifier=RecordingNotifier(delivered=False),
            raise_on_delivery_failure=True,
        )

        with pytest.raises(DeliveryFailed):
            engine.request_otp(EMAIL)

        assert engine.snapshot(EMAIL) is not None

    def test_shutdown_closes_notifier(self, fake_clock):
        notifier = RecordingNotifier()
        engine = OTPEngine(notifier=notifier, clock=fake_clock, auto_start=False)

        engine.shutdown()

        assert notifier.closed is True


class TestAuditIntegration:
    def test_clear_all_limits_audited(self, fake_clock):
        from hacktrack_core.audit import AuditLogger

        audit = AuditLogger()
        engine = OTPEngine(clock=fake_clock, auto_start=False, audit=audit)
        engine.request_otp(EMAIL)

        engine.clear_all_limits()

        event = audit.flush()[-1]
        assert event.event_type == "admin.limits_cleared"
        assert event.payload["otp_count"] == 1


class TestOTPConfig:
    """Tests for OTPConfig."""

    def test_defaults(self):
        config = OTPConfig()

        assert config.code_length == 6
        assert config.expiry_seconds == 600
        assert config.max_attempts == 5
        assert config.max_requests_per_window == 3
        assert config.expiration_minutes == 10
        assert config.insecure_debug is False

    def test_rejects_non_positive_values(self):
        with pytest.raises(ValueError):
            OTPConfig(max_attempts=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("OTP_EXPIRY_SECONDS", "90")
        monkeypatch.setenv("OTP_RATE_LIMIT_ENABLED", "false")
        monkeypatch.setenv("OTP_INSECURE_DEBUG", "1")

        config = OTPConfig.from_env()

        assert config.max_attempts == 3
        assert config.expiration_minutes == 2
        assert config.rate_limit_enabled is False
        assert config.insecure_debug is True
        assert config.code_length == 6
