"""
OTP Metrics
===========
Prometheus metrics for OTP issuance, verification and delivery.

Usage:
    from fastapi import FastAPI
    from hacktrack_core.metrics import get_metrics_app

    app = FastAPI()
    app.mount("/metrics", get_metrics_app())
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, make_asgi_app

# Dedicated registry so several engines (and test runs) share one set of series
OTP_REGISTRY = CollectorRegistry()

OTP_EVENTS = Counter(
    name="hacktrack_otp_events",
    documentation="OTP lifecycle events",
    labelnames=["event"],
    registry=OTP_REGISTRY,
)

OTP_DELIVERIES = Counter(
    name="hacktrack_otp_deliveries",
    documentation="OTP delivery attempts by channel and outcome",
    labelnames=["channel", "outcome"],
    registry=OTP_REGISTRY,
)

OTP_STORE_SIZE = Gauge(
    name="hacktrack_otp_store_size",
    documentation="Live entries in the in-memory OTP stores",
    labelnames=["store"],
    registry=OTP_REGISTRY,
)


def record_otp_event(event: str) -> None:
    """Count one lifecycle event (generated, verified, expired, ...)."""
    OTP_EVENTS.labels(event=event).inc()


def record_delivery(channel: str, outcome: str) -> None:
    OTP_DELIVERIES.labels(channel=channel or "unknown", outcome=outcome).inc()


def set_store_sizes(otps: int, rate_limits: int, processing: int) -> None:
    OTP_STORE_SIZE.labels(store="otps").set(otps)
    OTP_STORE_SIZE.labels(store="rate_limits").set(rate_limits)
    OTP_STORE_SIZE.labels(store="processing").set(processing)


def get_event_count(event: str) -> float:
    """Current value of the lifecycle counter for ``event``."""
    value = OTP_REGISTRY.get_sample_value("hacktrack_otp_events_total", {"event": event})
    return value or 0.0


def get_metrics_app():
    """ASGI app exposing the OTP registry."""
    return make_asgi_app(registry=OTP_REGISTRY)
