"""
HTTP Error Mapping
==================
Translate OTP engine failures into JSON error responses.

The engine only knows error kinds; status codes and public error codes
live here.
"""

from typing import Dict, Tuple

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from hacktrack_core.otp.exceptions import OTPError, OTPErrorKind, RateLimited

logger = structlog.get_logger(__name__)

ERROR_RESPONSES: Dict[OTPErrorKind, Tuple[int, str]] = {
    OTPErrorKind.INVALID_INPUT: (400, "INVALID_INPUT"),
    OTPErrorKind.CONCURRENT_OPERATION: (409, "CONCURRENT_REQUEST"),
    OTPErrorKind.RATE_LIMITED: (429, "RATE_LIMIT_EXCEEDED"),
    OTPErrorKind.NOT_FOUND: (400, "OTP_NOT_FOUND"),
    OTPErrorKind.ALREADY_USED: (400, "OTP_ALREADY_USED"),
    OTPErrorKind.EXPIRED: (400, "OTP_EXPIRED"),
    OTPErrorKind.INVALID_CODE: (400, "INVALID_OTP"),
    OTPErrorKind.ATTEMPTS_EXCEEDED: (400, "ATTEMPTS_EXCEEDED"),
    OTPErrorKind.DELIVERY_FAILED: (503, "EMAIL_SERVICE_ERROR"),
}


def otp_error_response(error: OTPError) -> JSONResponse:
    """Build the response for an engine failure."""
    status_code, code = ERROR_RESPONSES.get(error.kind, (400, "OTP_ERROR"))
    body = {"success": False, "error": {"code": code, "message": error.message}}

    headers = {}
    if isinstance(error, RateLimited):
        body["error"]["retry_after"] = error.retry_after
        headers["Retry-After"] = str(error.retry_after)
    attempts_remaining = getattr(error, "attempts_remaining", None)
    if attempts_remaining is not None:
        body["error"]["attempts_remaining"] = attempts_remaining

    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def otp_error_handler(request: Request, exc: OTPError) -> JSONResponse:
    logger.info(
        "OTP request rejected",
        path=request.url.path,
        kind=exc.kind.value,
    )
    return otp_error_response(exc)
