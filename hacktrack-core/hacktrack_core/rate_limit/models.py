"""
Rate Limit Models
=================
Data models for per-identifier rate limiting.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass
class RateLimitRecord:
    """Request counter for one identifier within the current window."""
    identifier: str
    request_count: int
    window_start: datetime
    blocked: bool = False
    blocked_until: Optional[datetime] = None

    def is_blocking(self, now: datetime) -> bool:
        return self.blocked and self.blocked_until is not None and now < self.blocked_until


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: Optional[datetime] = None
    retry_after: Optional[int] = None  # Seconds until retry allowed

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
