"""
OTP Engine
==========
Owns OTP records, per-identifier rate limits and the in-flight operation
guard; issues, verifies and expires one-time passcodes.
"""

import threading
from contextlib import contextmanager
from dataclasses import asdict, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Set, Tuple

import structlog

from hacktrack_core import metrics
from hacktrack_core.audit import AuditEventType, AuditLogger
from hacktrack_core.identifiers import mask_identifier, normalize_identifier
from hacktrack_core.notifications.base import BaseNotifier, DeliveryContext, DeliveryResult
from hacktrack_core.notifications.logging_notifier import LoggingNotifier
from hacktrack_core.rate_limit import FixedWindowRateLimiter, RateLimitResult

from .codes import constant_time_compare, generate_otp
from .exceptions import (
    AttemptsExceeded,
    ConcurrentOperation,
    DeliveryFailed,
    InvalidCode,
    InvalidInput,
    OTPAlreadyUsed,
    OTPError,
    OTPExpired,
    OTPNotFound,
    RateLimited,
)
from .models import (
    CleanupReport,
    ClearReport,
    OTPConfig,
    OTPRecord,
    OTPRequestResult,
    OTPVerifyResult,
)

logger = structlog.get_logger(__name__)

OPERATION_GENERATE = "generate"
OPERATION_VERIFY = "verify"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPEngine:
    """
    In-process OTP lifecycle engine.

    All state lives on the instance and is guarded by one lock. A second
    operation of the same kind on the same identifier is rejected with
    ConcurrentOperation instead of queued. A background worker sweeps
    expired records every ``cleanup_interval_seconds`` until shutdown().

    Example:
        engine = OTPEngine(OTPConfig(), notifier=build_notifier_from_env())
        result = engine.request_otp("alice@example.com")
        engine.verify_otp("alice@example.com", "482913")
        engine.shutdown()
    """

    def __init__(
        self,
        config: Optional[OTPConfig] = None,
        notifier: Optional[BaseNotifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        auto_start: bool = True,
        audit: Optional[AuditLogger] = None,
    ):
        self.config = config or OTPConfig()
        self.notifier = notifier
        self.audit = audit
        self._fallback_notifier = LoggingNotifier()
        self._clock = clock or _utcnow

        self._otps: Dict[str, OTPRecord] = {}
        self._rate_limiter = FixedWindowRateLimiter(
            max_requests=self.config.max_requests_per_window,
            window_seconds=self.config.rate_limit_window_seconds,
        )
        self._processing: Set[Tuple[str, str]] = set()
        self._lock = threading.RLock()

        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

        logger.info(
            "OTP engine initialized",
            rate_limit_enabled=self.config.rate_limit_enabled,
            notifier=notifier.name if notifier else None,
        )
        if auto_start:
            self.start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background cleanup worker (no-op if running)."""
        if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
            return
        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            name="otp-cleanup",
            daemon=True,
        )
        self._cleanup_thread.start()
        logger.info(
            "OTP cleanup started",
            interval_seconds=self.config.cleanup_interval_seconds,
        )

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the cleanup worker and close the notifier."""
        self._stop_event.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._cleanup_thread = None
        if self.notifier is not None:
            self.notifier.close()
        logger.info("OTP engine stopped")

    @property
    def is_running(self) -> bool:
        return self._cleanup_thread is not None and self._cleanup_thread.is_alive()

    def __enter__(self) -> "OTPEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _cleanup_loop(self) -> None:
        while not self._stop_event.wait(self.config.cleanup_interval_seconds):
            try:
                self.cleanup()
            except Exception:
                logger.exception("OTP cleanup sweep failed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _processing_guard(self, operation: str, identifier: str):
        key = (operation, identifier)
        with self._lock:
            if key in self._processing:
                if operation == OPERATION_GENERATE:
                    raise ConcurrentOperation(
                        "OTP generation already in progress for this email"
                    )
                raise ConcurrentOperation("OTP verification already in progress")
            self._processing.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._processing.discard(key)

    def _update_gauges(self) -> None:
        metrics.set_store_sizes(
            len(self._otps), len(self._rate_limiter), len(self._processing)
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def request_otp(
        self,
        identifier: str,
        *,
        is_resend: bool = False,
        user_name: Optional[str] = None,
    ) -> OTPRequestResult:
        """
        Generate and store a new OTP for ``identifier``.

        Replaces any existing record. When a notifier is configured the code
        is delivered after the record is stored; delivery problems do not
        undo the record.

        ``user_name`` only personalizes the delivered message.

        Raises:
            InvalidInput: Empty identifier
            ConcurrentOperation: Generation already running for the identifier
            RateLimited: Identifier blocked by the rate limiter
            DeliveryFailed: Only with ``raise_on_delivery_failure``
        """
        identifier = normalize_identifier(identifier)
        if not identifier:
            raise InvalidInput("Email is required")

        masked = mask_identifier(identifier)

        with self._processing_guard(OPERATION_GENERATE, identifier):
            now = self._now()
            with self._lock:
                if self.config.rate_limit_enabled:
                    info = self._rate_limiter.check(identifier, now)
                    if info.result is RateLimitResult.BLOCKED:
                        logger.warning(
                            "OTP request rate limited",
                            identifier=masked,
                            result=info.result.value,
                            reset_at=info.reset_at.isoformat(),
                            retry_after=info.retry_after,
                        )
                        metrics.record_otp_event("rate_limited")
                        raise RateLimited(info.retry_after)

                code = generate_otp(self.config.code_length)
                previous = self._otps.get(identifier)
                record = OTPRecord(
                    identifier=identifier,
                    code=code,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.config.expiry_seconds),
                    resend_count=previous.resend_count + 1 if previous else 0,
                )
                self._otps[identifier] = record

                if self.config.rate_limit_enabled:
                    self._rate_limiter.hit(identifier, now)
                self._update_gauges()

        logger.info(
            "OTP generated",
            identifier=masked,
            is_resend=is_resend,
            resend_count=record.resend_count,
            expires_at=record.expires_at.isoformat(),
        )
        metrics.record_otp_event("resent" if is_resend else "generated")

        delivery = None
        if self.notifier is not None:
            delivery = self._deliver(identifier, code, is_resend, user_name)

        return OTPRequestResult(
            identifier=identifier,
            expires_at=record.expires_at,
            resend_count=record.resend_count,
            is_resend=is_resend,
            delivery=delivery,
            debug_code=code if self.config.insecure_debug else None,
        )

    def resend_otp(self, identifier: str, user_name: Optional[str] = None) -> OTPRequestResult:
        """Issue a fresh code, unconditionally replacing any live one."""
        normalized = normalize_identifier(identifier)
        with self._lock:
            existing = self._otps.get(normalized)
            if existing is not None and not existing.used and not existing.is_expired(self._now()):
                logger.info("Replacing live OTP on resend", identifier=mask_identifier(normalized))
        return self.request_otp(identifier, is_resend=True, user_name=user_name)

    def verify_otp(self, identifier: str, code: str) -> OTPVerifyResult:
        """
        Verify ``code`` for ``identifier``. Succeeds at most once per code.

        Every call that reaches the comparison counts as an attempt.

        Raises:
            InvalidInput: Missing identifier/code, wrong code length or non-digit code
            ConcurrentOperation: Verification already running for the identifier
            OTPNotFound: No live record
            OTPAlreadyUsed: Record already consumed
            OTPExpired: Record past its expiry (record removed)
            InvalidCode: Wrong code, attempts remain
            AttemptsExceeded: Attempts exhausted (record removed)
        """
        identifier = normalize_identifier(identifier)
        code = code or ""
        if not identifier or not code:
            raise InvalidInput()
        if len(code) != self.config.code_length or not (code.isascii() and code.isdigit()):
            raise InvalidInput(f"OTP must be {self.config.code_length} digits")

        masked = mask_identifier(identifier)

        try:
            with self._processing_guard(OPERATION_VERIFY, identifier):
                now = self._now()
                with self._lock:
                    try:
                        verified = self._check_code(identifier, code, now)
                    finally:
                        self._update_gauges()
        except OTPError as e:
            logger.warning("OTP verification failed", identifier=masked, kind=e.kind.value)
            metrics.record_otp_event("verify_failed")
            raise

        logger.info("OTP verified", identifier=masked)
        metrics.record_otp_event("verified")
        return verified

    def _check_code(self, identifier: str, code: str, now: datetime) -> OTPVerifyResult:
        # Caller holds self._lock.
        record = self._otps.get(identifier)
        if record is None:
            raise OTPNotFound()

        if record.used:
            del self._otps[identifier]
            raise OTPAlreadyUsed()

        if record.is_expired(now):
            del self._otps[identifier]
            metrics.record_otp_event("expired")
            raise OTPExpired()

        max_attempts = self.config.max_attempts
        if record.attempts >= max_attempts:
            del self._otps[identifier]
            metrics.record_otp_event("attempts_exceeded")
            raise AttemptsExceeded()

        record.attempts += 1

        if not constant_time_compare(record.code, code):
            if record.attempts >= max_attempts:
                del self._otps[identifier]
                metrics.record_otp_event("attempts_exceeded")
                raise AttemptsExceeded(
                    "Invalid OTP. Maximum attempts exceeded. Please request a new OTP"
                )
            raise InvalidCode(attempts_remaining=max_attempts - record.attempts)

        record.used = True
        record.used_at = now
        del self._otps[identifier]
        return OTPVerifyResult(identifier=identifier, verified_at=now)

    def _deliver(
        self,
        identifier: str,
        code: str,
        is_resend: bool,
        user_name: Optional[str],
    ) -> DeliveryResult:
        context = DeliveryContext(
            is_resend=is_resend,
            expiration_minutes=self.config.expiration_minutes,
            user_name=user_name,
        )
        masked = mask_identifier(identifier)

        try:
            result = self.notifier.send_code(identifier, code, context)
        except Exception as e:
            logger.exception("Notifier raised during OTP delivery", identifier=masked)
            result = DeliveryResult(
                delivered=False,
                channel=self.notifier.name,
                error=str(e),
            )

        if result.delivered:
            metrics.record_delivery(result.channel, "delivered")
            return result

        metrics.record_delivery(result.channel, "failed")
        logger.error(
            "OTP delivery failed",
            identifier=masked,
            channel=result.channel,
            error=result.error,
        )

        if self.config.raise_on_delivery_failure:
            raise DeliveryFailed(f"Failed to deliver OTP email: {result.error}")

        if self.config.log_fallback:
            fallback = self._fallback_notifier.send_code(identifier, code, context)
            metrics.record_delivery(fallback.channel, "fallback")
            return replace(fallback, fallback=True, error=result.error)

        return result

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self) -> CleanupReport:
        """Remove expired or used OTPs and stale rate-limit records."""
        now = self._now()
        with self._lock:
            stale = [
                key for key, record in self._otps.items()
                if record.is_expired(now) or record.used
            ]
            for key in stale:
                del self._otps[key]
            rate_limits_removed = self._rate_limiter.cleanup(now)
            self._update_gauges()

        report = CleanupReport(otps_removed=len(stale), rate_limits_removed=rate_limits_removed)
        if report.otps_removed or report.rate_limits_removed:
            logger.info(
                "OTP cleanup completed",
                otps_removed=report.otps_removed,
                rate_limits_removed=report.rate_limits_removed,
            )
        return report

    def clear_all_limits(self) -> ClearReport:
        """Drop every OTP, rate-limit record and in-flight marker."""
        with self._lock:
            report = ClearReport(
                otp_count=len(self._otps),
                rate_limit_count=self._rate_limiter.clear(),
                processing_count=len(self._processing),
            )
            self._otps.clear()
            self._processing.clear()
            self._update_gauges()

        logger.warning(
            "Cleared all OTP limits",
            otp_count=report.otp_count,
            rate_limit_count=report.rate_limit_count,
            processing_count=report.processing_count,
        )
        if self.audit is not None:
            self.audit.log(AuditEventType.LIMITS_CLEARED, actor_id="operator", payload={
                "otp_count": report.otp_count,
                "rate_limit_count": report.rate_limit_count,
                "processing_count": report.processing_count,
            })
        return report

    def snapshot(self, identifier: str) -> Optional[OTPRecord]:
        """Copy of the live record for ``identifier``, if any."""
        with self._lock:
            record = self._otps.get(normalize_identifier(identifier))
            return replace(record) if record is not None else None

    def get_stats(self) -> dict:
        now = self._now()
        with self._lock:
            active = sum(
                1 for record in self._otps.values()
                if not record.used and not record.is_expired(now)
            )
            return {
                "total_otps": len(self._otps),
                "active_otps": active,
                "rate_limited_identifiers": len(self._rate_limiter),
                "processing_operations": len(self._processing),
                "config": asdict(self.config),
            }
