"""
OTP Audit Trail
===============
Append-only, hash-chained audit events for OTP activity.
"""

import hashlib
import json
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class AuditEventType(str, Enum):
    OTP_REQUESTED = "otp.requested"
    OTP_RESENT = "otp.resent"
    OTP_VERIFIED = "otp.verified"
    OTP_VERIFY_FAILED = "otp.verify_failed"
    OTP_RATE_LIMITED = "otp.rate_limited"
    LIMITS_CLEARED = "admin.limits_cleared"


@dataclass
class AuditEvent:
    id: str
    timestamp: datetime
    service: str
    event_type: str
    actor_id: Optional[str]  # masked email
    outcome: str  # "success", "failure", "blocked"
    payload: Dict[str, Any]
    ip_address: Optional[str]
    user_agent: Optional[str]
    hash: str
    previous_hash: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


def compute_event_hash(
    previous_hash: Optional[str],
    timestamp: datetime,
    service: str,
    event_type: str,
    actor_id: Optional[str],
    outcome: str,
    payload: Dict[str, Any],
) -> str:
    """SHA-256 over the event fields and the previous event's hash."""
    hash_input = json.dumps({
        "previous_hash": previous_hash,
        "timestamp": timestamp.isoformat(),
        "service": service,
        "event_type": event_type,
        "actor_id": actor_id,
        "outcome": outcome,
        "payload": payload,
    }, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(hash_input.encode()).hexdigest()


def verify_chain_integrity(events: List[AuditEvent]) -> Tuple[bool, Optional[int]]:
    """
    Check hashes and linkage of events in chronological order.

    Returns:
        (is_valid, index of the first bad event or None)
    """
    for i, event in enumerate(events):
        expected_previous = events[i - 1].hash if i else None
        if i and event.previous_hash != expected_previous:
            logger.warning("Audit chain linkage broken", event_id=event.id, index=i)
            return False, i
        expected_hash = compute_event_hash(
            event.previous_hash,
            event.timestamp,
            event.service,
            event.event_type,
            event.actor_id,
            event.outcome,
            event.payload,
        )
        if event.hash != expected_hash:
            logger.warning("Audit chain integrity violation", event_id=event.id, index=i)
            return False, i
    return True, None


class AuditLogger:
    """
    Buffers audit events and keeps the hash chain across calls.

    The buffer holds at most ``buffer_size`` events; when full, the oldest
    unflushed event is dropped. The chain itself is not affected.
    """

    def __init__(self, service_name: str = "hacktrack-otp", buffer_size: int = 1000):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.service_name = service_name
        self._previous_hash: Optional[str] = None
        self._buffer: Deque[AuditEvent] = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buffer)

    def log(
        self,
        event_type: AuditEventType,
        outcome: str = "success",
        actor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditEvent:
        timestamp = datetime.now(timezone.utc)
        payload = payload or {}
        event_type_str = (
            event_type.value if isinstance(event_type, AuditEventType) else event_type
        )

        with self._lock:
            event_hash = compute_event_hash(
                self._previous_hash,
                timestamp,
                self.service_name,
                event_type_str,
                actor_id,
                outcome,
                payload,
            )
            event = AuditEvent(
                id=str(uuid.uuid4()),
                timestamp=timestamp,
                service=self.service_name,
                event_type=event_type_str,
                actor_id=actor_id,
                outcome=outcome,
                payload=payload,
                ip_address=ip_address,
                user_agent=user_agent,
                hash=event_hash,
                previous_hash=self._previous_hash,
            )
            self._previous_hash = event_hash
            self._buffer.append(event)

        logger.info(
            "Audit event logged",
            event_id=event.id,
            event_type=event.event_type,
            actor=actor_id,
            outcome=outcome,
        )
        return event

    def flush(self) -> List[AuditEvent]:
        """Return and clear buffered events."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events
