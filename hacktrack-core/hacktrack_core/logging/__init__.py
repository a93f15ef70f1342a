"""
HackTrack Logging Module

Structured JSON logging shared by the OTP engine and the HTTP layer.
"""

from .structured import (
    JSONFormatter,
    setup_logging,
    get_logger,
    RequestLoggingMiddleware,
    request_id_var,
    service_name_var,
)

__all__ = [
    "JSONFormatter",
    "setup_logging",
    "get_logger",
    "RequestLoggingMiddleware",
    "request_id_var",
    "service_name_var",
]
