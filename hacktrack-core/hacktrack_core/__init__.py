"""
HackTrack Core Library
======================
OTP lifecycle engine and its collaborators for the HackTrack backend.
"""

__version__ = "0.1.0"

# OTP
from hacktrack_core.otp import (
    OTPConfig,
    OTPEngine,
    OTPRecord,
    OTPRequestResult,
    OTPVerifyResult,
    CleanupReport,
    ClearReport,
    OTPErrorKind,
    OTPError,
    InvalidInput,
    ConcurrentOperation,
    RateLimited,
    OTPNotFound,
    OTPAlreadyUsed,
    OTPExpired,
    InvalidCode,
    AttemptsExceeded,
    DeliveryFailed,
    generate_otp,
    constant_time_compare,
)

# Rate Limiting
from hacktrack_core.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitInfo,
    RateLimitRecord,
    RateLimitResult,
)

# Notifiers
from hacktrack_core.notifications import (
    BaseNotifier,
    DeliveryContext,
    DeliveryResult,
    LoggingNotifier,
    BrevoEmailNotifier,
    SmtpEmailNotifier,
    build_notifier_from_env,
)

# Audit
from hacktrack_core.audit import AuditEventType, AuditEvent, AuditLogger

__all__ = [
    "__version__",
    # OTP
    "OTPConfig",
    "OTPEngine",
    "OTPRecord",
    "OTPRequestResult",
    "OTPVerifyResult",
    "CleanupReport",
    "ClearReport",
    "OTPErrorKind",
    "OTPError",
    "InvalidInput",
    "ConcurrentOperation",
    "RateLimited",
    "OTPNotFound",
    "OTPAlreadyUsed",
    "OTPExpired",
    "InvalidCode",
    "AttemptsExceeded",
    "DeliveryFailed",
    "generate_otp",
    "constant_time_compare",
    # Rate Limiting
    "FixedWindowRateLimiter",
    "RateLimitInfo",
    "RateLimitRecord",
    "RateLimitResult",
    # Notifiers
    "BaseNotifier",
    "DeliveryContext",
    "DeliveryResult",
    "LoggingNotifier",
    "BrevoEmailNotifier",
    "SmtpEmailNotifier",
    "build_notifier_from_env",
    # Audit
    "AuditEventType",
    "AuditEvent",
    "AuditLogger",
]
