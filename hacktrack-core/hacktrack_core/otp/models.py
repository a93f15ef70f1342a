"""
OTP Models
==========
Configuration, records and result types for the OTP engine.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from hacktrack_core.notifications.base import DeliveryResult


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OTPConfig:
    """Configuration for the OTP engine."""
    code_length: int = 6
    expiry_seconds: int = 600  # 10 minutes
    max_attempts: int = 5
    rate_limit_window_seconds: int = 900  # 15 minutes
    max_requests_per_window: int = 3
    cleanup_interval_seconds: float = 60
    rate_limit_enabled: bool = True
    # Returns the raw code in OTPRequestResult.debug_code. Never enable in production.
    insecure_debug: bool = False
    log_fallback: bool = True
    raise_on_delivery_failure: bool = False

    def __post_init__(self):
        if self.code_length <= 0:
            raise ValueError("code_length must be positive")
        if self.expiry_seconds <= 0:
            raise ValueError("expiry_seconds must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("rate_limit_window_seconds must be positive")
        if self.max_requests_per_window <= 0:
            raise ValueError("max_requests_per_window must be positive")
        if self.cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be positive")

    @property
    def expiration_minutes(self) -> int:
        return max(1, -(-self.expiry_seconds // 60))

    @classmethod
    def from_env(cls) -> "OTPConfig":
        """Build a config from OTP_* environment variables."""
        defaults = cls()
        return cls(
            code_length=_env_int("OTP_CODE_LENGTH", defaults.code_length),
            expiry_seconds=_env_int("OTP_EXPIRY_SECONDS", defaults.expiry_seconds),
            max_attempts=_env_int("OTP_MAX_ATTEMPTS", defaults.max_attempts),
            rate_limit_window_seconds=_env_int(
                "OTP_RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds
            ),
            max_requests_per_window=_env_int(
                "OTP_MAX_REQUESTS_PER_WINDOW", defaults.max_requests_per_window
            ),
            cleanup_interval_seconds=_env_int(
                "OTP_CLEANUP_INTERVAL_SECONDS", int(defaults.cleanup_interval_seconds)
            ),
            rate_limit_enabled=_env_bool("OTP_RATE_LIMIT_ENABLED", defaults.rate_limit_enabled),
            insecure_debug=_env_bool("OTP_INSECURE_DEBUG", defaults.insecure_debug),
            log_fallback=_env_bool("OTP_LOG_FALLBACK", defaults.log_fallback),
            raise_on_delivery_failure=_env_bool(
                "OTP_RAISE_ON_DELIVERY_FAILURE", defaults.raise_on_delivery_failure
            ),
        )


@dataclass
class OTPRecord:
    """The single live OTP for an identifier."""
    identifier: str
    code: str = field(repr=False)
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    used: bool = False
    used_at: Optional[datetime] = None
    resend_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class OTPRequestResult:
    """Outcome of a successful request_otp/resend_otp call."""
    identifier: str
    expires_at: datetime
    resend_count: int
    is_resend: bool = False
    delivery: Optional[DeliveryResult] = None
    debug_code: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        data = {
            "expires_at": self.expires_at.isoformat(),
            "resend_count": self.resend_count,
        }
        if self.debug_code is not None:
            data["debug"] = {"otp": self.debug_code}
        return data


@dataclass
class OTPVerifyResult:
    """Outcome of a successful verification."""
    identifier: str
    verified_at: datetime


@dataclass
class CleanupReport:
    otps_removed: int = 0
    rate_limits_removed: int = 0


@dataclass
class ClearReport:
    otp_count: int = 0
    rate_limit_count: int = 0
    processing_count: int = 0
