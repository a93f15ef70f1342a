"""
Rate Limiting
=============
Per-identifier fixed window rate limiting for OTP issuance.
"""

from .models import RateLimitResult, RateLimitInfo, RateLimitRecord
from .fixed_window import FixedWindowRateLimiter

__all__ = [
    "RateLimitResult",
    "RateLimitInfo",
    "RateLimitRecord",
    "FixedWindowRateLimiter",
]
