"""
OTP Email Templates
===================
Subject, HTML and plain-text bodies for OTP emails.
"""

from dataclasses import dataclass
from html import escape

from .base import DeliveryContext

PRODUCT_NAME = "HackTrack"
SUPPORT_EMAIL = "support@hacktrack.com"


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


def render_otp_email(code: str, context: DeliveryContext) -> EmailContent:
    """Render the OTP email for a first request or a resend."""
    if context.is_resend:
        subject = f"Your New OTP for {PRODUCT_NAME}"
        action = f"You requested a new OTP for {PRODUCT_NAME}. Your new OTP is:"
    else:
        subject = f"Your OTP for {PRODUCT_NAME}"
        action = f"Thank you for using {PRODUCT_NAME}. Your verification OTP is:"

    greeting = f"Hello {context.user_name}," if context.user_name else "Hello,"
    minutes = context.expiration_minutes

    html = f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{escape(subject)}</title></head>
<body style="font-family:Arial,sans-serif;background:#f8fafc">
  <div style="max-width:600px;margin:0 auto;background:#ffffff;padding:32px">
    <h1 style="color:#4f46e5">{PRODUCT_NAME} Security</h1>
    <p>{escape(greeting)}</p>
    <p>{escape(action)}</p>
    <div style="font-size:36px;font-weight:700;letter-spacing:8px;font-family:monospace">{escape(code)}</div>
    <p>This OTP is valid for {minutes} minutes only. Please use it promptly.</p>
    <p>For your security, never share this OTP with anyone.</p>
    <p style="color:#6b7280">If you didn't request this OTP, you can safely ignore this email.</p>
    <p style="color:#9ca3af;font-size:12px">Need help? Contact us at {SUPPORT_EMAIL}</p>
  </div>
</body>
</html>"""

    text = (
        f"{greeting}\n\n"
        f"{action}\n\n"
        f"Your OTP: {code}\n\n"
        f"This OTP is valid for {minutes} minutes. Please do not share it with anyone.\n\n"
        "If you didn't request this OTP, you can safely ignore this email.\n\n"
        f"Best regards,\nThe {PRODUCT_NAME} Team"
    )

    return EmailContent(subject=subject, html=html, text=text)
