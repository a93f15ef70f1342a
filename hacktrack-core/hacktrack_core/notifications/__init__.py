"""
OTP Notifiers
=============
Out-of-band delivery of OTP codes (email, log fallback).
"""

from .base import BaseNotifier, DeliveryContext, DeliveryResult
from .logging_notifier import LoggingNotifier
from .templates import EmailContent, render_otp_email
from .brevo import BrevoEmailNotifier
from .smtp import SmtpEmailNotifier
from .factory import build_notifier_from_env

__all__ = [
    "BaseNotifier",
    "DeliveryContext",
    "DeliveryResult",
    "LoggingNotifier",
    "EmailContent",
    "render_otp_email",
    "BrevoEmailNotifier",
    "SmtpEmailNotifier",
    "build_notifier_from_env",
]
