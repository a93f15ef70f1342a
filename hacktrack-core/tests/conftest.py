"""
Shared fixtures for hacktrack-core tests.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from hacktrack_core.notifications.base import BaseNotifier, DeliveryContext, DeliveryResult
from hacktrack_core.otp import OTPConfig, OTPEngine

EMAIL = "alice@example.com"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class BlockingClock:
    """Clock that parks the calling thread once, after being armed."""

    def __init__(self, clock):
        self.clock = clock
        self.armed = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self) -> datetime:
        if self.armed:
            self.armed = False
            self.entered.set()
            self.release.wait(5)
        return self.clock()


class RecordingNotifier(BaseNotifier):
    name = "recording"

    def __init__(self, delivered: bool = True):
        self.delivered = delivered
        self.sent = []
        self.closed = False

    def send_code(self, identifier: str, code: str, context: DeliveryContext) -> DeliveryResult:
        self.sent.append((identifier, code, context))
        if not self.delivered:
            return DeliveryResult(delivered=False, channel=self.name, error="mailbox unavailable")
        return DeliveryResult(delivered=True, reference=f"msg-{len(self.sent)}", channel=self.name)

    def close(self) -> None:
        self.closed = True


class ExplodingNotifier(BaseNotifier):
    name = "exploding"

    def send_code(self, identifier: str, code: str, context: DeliveryContext) -> DeliveryResult:
        raise ConnectionError("SMTP server unreachable")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_engine(fake_clock):
    """Factory for engines on the fake clock; shut down after the test."""
    engines = []

    def _make(notifier=None, clock=None, **config_overrides):
        config_overrides.setdefault("insecure_debug", True)
        engine = OTPEngine(
            OTPConfig(**config_overrides),
            notifier=notifier,
            clock=clock or fake_clock,
            auto_start=False,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.shutdown()


@pytest.fixture
def engine(make_engine):
    return make_engine()
