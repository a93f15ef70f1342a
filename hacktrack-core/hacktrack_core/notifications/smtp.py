"""
SMTP Email Notifier
===================
OTP email over SMTP with STARTTLS (Gmail app passwords by default).
"""

import smtplib
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from hacktrack_core.identifiers import mask_identifier
from .base import BaseNotifier, DeliveryContext, DeliveryResult
from .templates import render_otp_email

logger = structlog.get_logger(__name__)


class SmtpEmailNotifier(BaseNotifier):
    """SMTP adapter; each send opens its own connection."""

    name = "smtp"

    def __init__(
        self,
        username: str,
        password: str,
        host: str = "smtp.gmail.com",
        port: int = 587,
        sender: str = "",
        sender_name: str = "HackTrack Security",
        use_tls: bool = True,
        timeout: float = 20.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 1.0,
    ):
        self.username = username
        self.password = password
        self.host = host
        self.port = port
        self.sender = sender or username
        self.sender_name = sender_name
        self.use_tls = use_tls
        self.timeout = timeout
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=retry_wait_seconds, max=10),
            retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
            reraise=True,
        )

    def _build_message(self, identifier: str, code: str, context: DeliveryContext) -> MIMEMultipart:
        content = render_otp_email(code, context)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = content.subject
        msg["From"] = f'"{self.sender_name}" <{self.sender}>'
        msg["To"] = identifier
        msg["Message-ID"] = f"<{uuid.uuid4().hex}@hacktrack>"
        msg["X-Priority"] = "1"
        msg["Importance"] = "high"
        msg.attach(MIMEText(content.text, "plain", _charset="utf-8"))
        msg.attach(MIMEText(content.html, "html", _charset="utf-8"))
        return msg

    def _send(self, identifier: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [identifier], msg.as_string())

    def send_code(
        self,
        identifier: str,
        code: str,
        context: DeliveryContext,
    ) -> DeliveryResult:
        msg = self._build_message(identifier, code, context)
        try:
            self._retrying(self._send, identifier, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP send failed", recipient=mask_identifier(identifier), error=str(e))
            return DeliveryResult(delivered=False, channel=self.name, error=str(e))

        logger.info("OTP email sent", recipient=mask_identifier(identifier), host=self.host)
        return DeliveryResult(delivered=True, reference=msg["Message-ID"], channel=self.name)
