"""
OTP Generation and Verification
================================
In-memory OTP lifecycle with rate limiting and brute-force protection.
"""

from .models import (
    OTPConfig,
    OTPRecord,
    OTPRequestResult,
    OTPVerifyResult,
    CleanupReport,
    ClearReport,
)
from .codes import generate_otp, constant_time_compare
from .exceptions import (
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
)
from .engine import OTPEngine

__all__ = [
    # Models
    "OTPConfig",
    "OTPRecord",
    "OTPRequestResult",
    "OTPVerifyResult",
    "CleanupReport",
    "ClearReport",
    # Codes
    "generate_otp",
    "constant_time_compare",
    # Errors
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
    # Engine
    "OTPEngine",
]
