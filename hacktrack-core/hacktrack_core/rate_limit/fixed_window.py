"""
Fixed Window Rate Limiter
=========================
Per-identifier request counter whose window starts at the first request
and resets once it has elapsed.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, Optional

from .models import RateLimitInfo, RateLimitRecord


class FixedWindowRateLimiter:
    """
    In-memory fixed window limiter.

    ``check`` decides without counting; ``hit`` counts a request that was
    served. Not thread safe on its own: the owner serializes access.
    """

    def __init__(self, max_requests: int = 3, window_seconds: int = 900):
        """
        Args:
            max_requests: Requests allowed per window
            window_seconds: Window size in seconds
        """
        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self._records: Dict[str, RateLimitRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def _window_elapsed(self, record: RateLimitRecord, now: datetime) -> bool:
        # A window covers [window_start, window_start + window); the block
        # ends at window_start + window, so the boundary instant starts a new one.
        return now - record.window_start >= self.window

    def _retry_after(self, until: datetime, now: datetime) -> int:
        return max(1, math.ceil((until - now).total_seconds()))

    def check(self, key: str, now: datetime) -> RateLimitInfo:
        """
        Check whether a request for ``key`` is allowed at ``now``.

        Reaching the quota blocks the key until the end of its window.
        """
        record = self._records.get(key)

        if record is not None and self._window_elapsed(record, now):
            del self._records[key]
            record = None

        if record is None:
            return RateLimitInfo(
                allowed=True,
                remaining=self.max_requests,
                limit=self.max_requests,
            )

        reset_at = record.window_start + self.window

        if record.is_blocking(now):
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=self.max_requests,
                reset_at=record.blocked_until,
                retry_after=self._retry_after(record.blocked_until, now),
            )

        if record.request_count >= self.max_requests:
            record.blocked = True
            record.blocked_until = reset_at
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=self.max_requests,
                reset_at=reset_at,
                retry_after=self._retry_after(reset_at, now),
            )

        return RateLimitInfo(
            allowed=True,
            remaining=self.max_requests - record.request_count,
            limit=self.max_requests,
            reset_at=reset_at,
        )

    def hit(self, key: str, now: datetime) -> RateLimitRecord:
        """Count one served request, starting a new window when needed."""
        record = self._records.get(key)
        if record is None or self._window_elapsed(record, now):
            record = RateLimitRecord(identifier=key, request_count=1, window_start=now)
            self._records[key] = record
        else:
            record.request_count += 1
        return record

    def cleanup(self, now: datetime) -> int:
        """Drop records whose window has elapsed and which no longer block."""
        stale = [
            key for key, record in self._records.items()
            if self._window_elapsed(record, now) and not record.is_blocking(now)
        ]
        for key in stale:
            del self._records[key]
        return len(stale)

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count
