"""
Brevo Email Notifier
====================
Transactional OTP email through the Brevo HTTP API.
"""

from typing import Optional

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from hacktrack_core.identifiers import mask_identifier
from .base import BaseNotifier, DeliveryContext, DeliveryResult
from .templates import render_otp_email

logger = structlog.get_logger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3"


class _RetryableStatus(Exception):
    """Provider answered with a 5xx."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Brevo returned {response.status_code}")


class BrevoEmailNotifier(BaseNotifier):
    """
    Brevo (Sendinblue) transactional email adapter.

    Transport errors and 5xx responses are retried with exponential
    backoff; 4xx responses fail immediately.
    """

    name = "brevo"

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str = "HackTrack Security",
        base_url: str = BREVO_API_URL,
        timeout: float = 15.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 1.0,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise ValueError("Brevo API key is required")
        if not sender_email:
            raise ValueError("Brevo sender email is required")
        self.sender_email = sender_email
        self.sender_name = sender_name
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "accept": "application/json",
                "api-key": api_key,
                "content-type": "application/json",
            },
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=retry_wait_seconds, max=10),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            reraise=True,
        )

    def _post(self, payload: dict) -> httpx.Response:
        response = self._client.post("/smtp/email", json=payload)
        if response.status_code >= 500:
            raise _RetryableStatus(response)
        return response

    def send_code(
        self,
        identifier: str,
        code: str,
        context: DeliveryContext,
    ) -> DeliveryResult:
        content = render_otp_email(code, context)
        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": identifier}],
            "subject": content.subject,
            "htmlContent": content.html,
            "textContent": content.text,
        }

        try:
            response = self._retrying(self._post, payload)
        except _RetryableStatus as e:
            logger.error(
                "Brevo send failed after retries",
                recipient=mask_identifier(identifier),
                status=e.response.status_code,
            )
            return DeliveryResult(
                delivered=False,
                channel=self.name,
                error=f"Brevo returned {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            logger.error("Brevo send failed", recipient=mask_identifier(identifier), error=str(e))
            return DeliveryResult(delivered=False, channel=self.name, error=str(e))

        if response.status_code >= 300:
            logger.error(
                "Brevo rejected OTP email",
                recipient=mask_identifier(identifier),
                status=response.status_code,
                body=response.text[:200],
            )
            return DeliveryResult(
                delivered=False,
                channel=self.name,
                error=f"Brevo rejected the email ({response.status_code})",
            )

        message_id = response.json().get("messageId", "")
        logger.info("OTP email sent", recipient=mask_identifier(identifier), message_id=message_id)
        return DeliveryResult(delivered=True, reference=message_id, channel=self.name)

    def close(self) -> None:
        self._client.close()
