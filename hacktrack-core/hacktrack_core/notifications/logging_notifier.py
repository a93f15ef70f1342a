"""
Logging Notifier
================
Log-only delivery used in demo mode and as the fallback channel.
"""

import uuid
import structlog

from hacktrack_core.identifiers import mask_identifier
from .base import BaseNotifier, DeliveryContext, DeliveryResult

logger = structlog.get_logger(__name__)


class LoggingNotifier(BaseNotifier):
    """Writes the code to the server log so an operator can relay it."""

    name = "log"

    def send_code(
        self,
        identifier: str,
        code: str,
        context: DeliveryContext,
    ) -> DeliveryResult:
        reference = f"log_{uuid.uuid4().hex[:12]}"
        logger.warning(
            "OTP logged for manual delivery",
            recipient=mask_identifier(identifier),
            code=code,
            is_resend=context.is_resend,
            expires_in_minutes=context.expiration_minutes,
            reference=reference,
        )
        return DeliveryResult(delivered=True, reference=reference, channel=self.name)
