"""
OTP Exceptions
==============
Typed failures raised by the OTP engine.
"""

from enum import Enum
from typing import Optional


class OTPErrorKind(str, Enum):
    """Failure categories callers map to transport-level responses."""
    INVALID_INPUT = "invalid_input"
    CONCURRENT_OPERATION = "concurrent_operation"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    DELIVERY_FAILED = "delivery_failed"


class OTPError(Exception):
    """Base class for all OTP engine failures."""

    kind: OTPErrorKind = OTPErrorKind.INVALID_INPUT
    default_message = "OTP operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(OTPError):
    kind = OTPErrorKind.INVALID_INPUT
    default_message = "Email and OTP are required"


class ConcurrentOperation(OTPError):
    kind = OTPErrorKind.CONCURRENT_OPERATION
    default_message = "An OTP operation is already in progress for this email"


class RateLimited(OTPError):
    """Raised while an identifier is blocked by the rate limiter."""

    kind = OTPErrorKind.RATE_LIMITED

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"Rate limit exceeded. Try again in {retry_after} seconds"
        )


class OTPNotFound(OTPError):
    kind = OTPErrorKind.NOT_FOUND
    default_message = "No OTP found for this email. Please request a new OTP"


class OTPAlreadyUsed(OTPError):
    kind = OTPErrorKind.ALREADY_USED
    default_message = "OTP has already been used. Please request a new OTP"


class OTPExpired(OTPError):
    kind = OTPErrorKind.EXPIRED
    default_message = "OTP has expired. Please request a new OTP"


class InvalidCode(OTPError):
    kind = OTPErrorKind.INVALID_CODE

    def __init__(self, attempts_remaining: int, message: Optional[str] = None):
        self.attempts_remaining = attempts_remaining
        super().__init__(
            message or f"Invalid OTP. {attempts_remaining} attempts remaining"
        )


class AttemptsExceeded(OTPError):
    kind = OTPErrorKind.ATTEMPTS_EXCEEDED
    default_message = "Maximum verification attempts exceeded. Please request a new OTP"


class DeliveryFailed(OTPError):
    """The code was stored but could not be delivered."""

    kind = OTPErrorKind.DELIVERY_FAILED
    default_message = "Failed to deliver OTP email"
