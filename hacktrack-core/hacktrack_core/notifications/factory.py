"""
Notifier Factory
================
Pick the OTP notifier from environment configuration.
"""

import os
from typing import Optional

import structlog

from .base import BaseNotifier
from .brevo import BrevoEmailNotifier
from .smtp import SmtpEmailNotifier

logger = structlog.get_logger(__name__)


def build_notifier_from_env() -> Optional[BaseNotifier]:
    """
    Brevo when BREVO_API_KEY is set, SMTP when GMAIL_USER and
    GMAIL_APP_PASSWORD are set, otherwise None (log fallback only).
    """
    api_key = os.environ.get("BREVO_API_KEY")
    if api_key:
        sender = (
            os.environ.get("BREVO_FROM")
            or os.environ.get("EMAIL_FROM")
            or os.environ.get("SMTP_FROM")
        )
        if not sender:
            raise ValueError("BREVO_FROM (or EMAIL_FROM/SMTP_FROM) is not set")
        logger.info("Using Brevo notifier", sender=sender)
        return BrevoEmailNotifier(api_key=api_key, sender_email=sender)

    user = os.environ.get("GMAIL_USER")
    password = os.environ.get("GMAIL_APP_PASSWORD")
    if user and password:
        host = os.environ.get("SMTP_HOST", "smtp.gmail.com")
        port = int(os.environ.get("SMTP_PORT", "587"))
        logger.info("Using SMTP notifier", host=host, port=port)
        return SmtpEmailNotifier(username=user, password=password, host=host, port=port)

    logger.warning("No email credentials configured, OTPs will be logged only")
    return None
