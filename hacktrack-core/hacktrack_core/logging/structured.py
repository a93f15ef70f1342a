"""
Structured Logging
==================
JSON logging for HackTrack services. structlog loggers used across the
package are routed through the stdlib root handler configured here.

Usage (FastAPI):
    from hacktrack_core.logging import setup_logging, RequestLoggingMiddleware

    setup_logging(service_name="hacktrack-api")
    app.add_middleware(RequestLoggingMiddleware)
"""

import json
import logging
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

from hacktrack_core.identifiers import mask_identifier

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
service_name_var: ContextVar[str] = ContextVar("service_name", default="hacktrack")

# Context keys that may carry a raw email address
IDENTIFIER_FIELDS = ("identifier", "recipient", "email", "actor")


# =============================================================================
# JSON Formatter
# =============================================================================

class JSONFormatter(logging.Formatter):
    """
    Formats log records as one JSON object per line.

    Email addresses under IDENTIFIER_FIELDS are masked even when a caller
    passes them unmasked.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": service_name_var.get(),
            "request_id": request_id_var.get() or None,
        }

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)
            for key in IDENTIFIER_FIELDS:
                value = log_data.get(key)
                if isinstance(value, str) and "@" in value:
                    log_data[key] = mask_identifier(value)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        log_data["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_data, default=str)


def _to_stdlib_kwargs(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Final structlog processor: event text as msg, context as extra_data."""
    exc_info = event_dict.pop("exc_info", None)
    event = event_dict.pop("event", "")
    kwargs: Dict[str, Any] = {"msg": event, "extra": {"extra_data": event_dict}}
    if exc_info:
        kwargs["exc_info"] = exc_info
    return kwargs


# =============================================================================
# Setup
# =============================================================================

def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> logging.Logger:
    """
    Configure stdlib and structlog logging for a service.

    Args:
        service_name: Name reported in every log line
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_output: JSON lines (production) or a plain console format

    Returns:
        Configured root logger
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s %(extra_data)s",
            defaults={"extra_data": ""},
        ))
    root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            _to_stdlib_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger.info(f"Logging configured for {service_name}", extra={
        "extra_data": {"event": "logging.configured", "service": service_name}
    })
    return root_logger


def get_logger(name: str):
    """structlog logger bound to ``name``."""
    return structlog.get_logger(name)


# =============================================================================
# Request Logging Middleware (ASGI)
# =============================================================================

class RequestLoggingMiddleware:
    """Assigns a request id and logs one line per request and response."""

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger("http")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        token = request_id_var.set(uuid.uuid4().hex[:8])
        method = scope.get("method", "")
        path = scope.get("path", "")
        headers = dict(scope.get("headers", []))

        client = scope.get("client")
        client_ip = client[0] if client else ""
        forwarded = headers.get(b"x-forwarded-for", b"").decode()
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        start_time = time.time()
        self.logger.info(f"Request: {method} {path}", extra={
            "extra_data": {
                "direction": "request",
                "method": method,
                "path": path,
                "client_ip": client_ip,
                "user_agent": headers.get(b"user-agent", b"").decode()[:200],
            }
        })

        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            level = (
                logging.INFO if status_code < 400
                else logging.WARNING if status_code < 500
                else logging.ERROR
            )
            self.logger.log(
                level,
                f"Response: {method} {path} -> {status_code} ({duration_ms}ms)",
                extra={
                    "extra_data": {
                        "direction": "response",
                        "method": method,
                        "path": path,
                        "status_code": status_code,
                        "duration_ms": duration_ms,
                    }
                },
            )
            request_id_var.reset(token)
