"""
OTP HTTP API
============
FastAPI routes for sending, verifying and resending OTPs.

The application factory owns the engine: it is built once, started in the
lifespan and handed to the routes explicitly.

Run with:
    uvicorn --factory hacktrack_core.api:create_app
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel, EmailStr, Field

from hacktrack_core.audit import AuditEventType, AuditLogger
from hacktrack_core.errors import otp_error_handler
from hacktrack_core.identifiers import mask_identifier
from hacktrack_core.logging import RequestLoggingMiddleware
from hacktrack_core.metrics import get_metrics_app
from hacktrack_core.notifications import BaseNotifier, build_notifier_from_env
from hacktrack_core.otp import OTPConfig, OTPEngine, OTPError, RateLimited

logger = structlog.get_logger(__name__)


class SendOTPRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=100)


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=1, max_length=12)


class OTPSentResponse(BaseModel):
    success: bool = True
    message: str
    expires_at: datetime
    resend_count: int
    debug: Optional[dict] = None


class OTPVerifiedResponse(BaseModel):
    success: bool = True
    message: str = "OTP verified successfully"
    email: str
    verified_at: datetime


def _client_info(request: Request) -> dict:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )
    return {"ip_address": ip, "user_agent": request.headers.get("user-agent")}


def create_otp_router(engine: OTPEngine, audit: Optional[AuditLogger] = None) -> APIRouter:
    """
    Build the OTP routes bound to ``engine``.

    OTPError propagates to the handler registered by create_app().
    """
    router = APIRouter(prefix="/api", tags=["otp"])
    if audit is None:
        audit = AuditLogger()

    def _issue(payload: SendOTPRequest, request: Request, is_resend: bool) -> OTPSentResponse:
        email = str(payload.email)
        event = AuditEventType.OTP_RESENT if is_resend else AuditEventType.OTP_REQUESTED
        try:
            if is_resend:
                result = engine.resend_otp(email, user_name=payload.name)
            else:
                result = engine.request_otp(email, user_name=payload.name)
        except RateLimited as e:
            audit.log(
                AuditEventType.OTP_RATE_LIMITED,
                outcome="blocked",
                actor_id=mask_identifier(email),
                payload={"retry_after": e.retry_after},
                **_client_info(request),
            )
            raise
        except OTPError as e:
            audit.log(
                event,
                outcome="failure",
                actor_id=mask_identifier(email),
                payload={"kind": e.kind.value},
                **_client_info(request),
            )
            raise

        audit.log(
            event,
            actor_id=mask_identifier(email),
            payload={
                "resend_count": result.resend_count,
                "delivered": result.delivery.delivered if result.delivery else None,
            },
            **_client_info(request),
        )
        data = result.to_dict()
        return OTPSentResponse(
            message=(
                "New OTP sent successfully to your email" if is_resend
                else "OTP sent successfully to your email"
            ),
            expires_at=result.expires_at,
            resend_count=result.resend_count,
            debug=data.get("debug"),
        )

    @router.post("/send-otp", response_model=OTPSentResponse, response_model_exclude_none=True)
    def send_otp(payload: SendOTPRequest, request: Request):
        """Generate an OTP and email it."""
        return _issue(payload, request, is_resend=False)

    @router.post("/resend-otp", response_model=OTPSentResponse, response_model_exclude_none=True)
    def resend_otp(payload: SendOTPRequest, request: Request):
        """Replace the current OTP with a new one and email it."""
        return _issue(payload, request, is_resend=True)

    @router.post("/verify-otp", response_model=OTPVerifiedResponse)
    def verify_otp(payload: VerifyOTPRequest, request: Request):
        """Verify a submitted OTP. A code verifies at most once."""
        email = str(payload.email)
        try:
            result = engine.verify_otp(email, payload.otp)
        except OTPError as e:
            audit.log(
                AuditEventType.OTP_VERIFY_FAILED,
                outcome="failure",
                actor_id=mask_identifier(email),
                payload={"kind": e.kind.value},
                **_client_info(request),
            )
            raise

        audit.log(
            AuditEventType.OTP_VERIFIED,
            actor_id=mask_identifier(email),
            **_client_info(request),
        )
        return OTPVerifiedResponse(email=result.identifier, verified_at=result.verified_at)

    return router


def create_app(
    config: Optional[OTPConfig] = None,
    notifier: Optional[BaseNotifier] = None,
    audit: Optional[AuditLogger] = None,
    use_env_notifier: bool = True,
) -> FastAPI:
    """
    Application factory.

    Args:
        config: Engine configuration (defaults to OTPConfig.from_env())
        notifier: Delivery channel; when omitted and ``use_env_notifier`` is
            set, one is built from the environment
        audit: Audit logger shared by the routes
        use_env_notifier: Fall back to build_notifier_from_env()
    """
    config = config or OTPConfig.from_env()
    if notifier is None and use_env_notifier:
        notifier = build_notifier_from_env()

    if audit is None:
        audit = AuditLogger()
    engine = OTPEngine(config, notifier=notifier, auto_start=False, audit=audit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.start()
        try:
            yield
        finally:
            engine.shutdown()

    app = FastAPI(title="HackTrack OTP Service", lifespan=lifespan)
    app.state.otp_engine = engine
    app.state.audit = audit

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(OTPError, otp_error_handler)
    app.include_router(create_otp_router(engine, audit))
    app.mount("/metrics", get_metrics_app())

    @app.get("/api/health")
    def health():
        stats = engine.get_stats()
        return {
            "status": "healthy",
            "otp_cleanup_running": engine.is_running,
            "active_otps": stats["active_otps"],
        }

    return app
