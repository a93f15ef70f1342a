"""
Notifier Base
=============
Contract for delivering OTP codes out of band.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class DeliveryContext:
    """What the notifier needs to know besides the code itself."""
    is_resend: bool = False
    expiration_minutes: int = 10
    user_name: Optional[str] = None


@dataclass
class DeliveryResult:
    """Result of a delivery attempt."""
    delivered: bool
    reference: str = ""
    channel: str = ""
    error: Optional[str] = None
    fallback: bool = False


class BaseNotifier(ABC):
    """
    Abstract base class for OTP notifiers.

    Implementations return a failed DeliveryResult for expected delivery
    problems (provider rejected, network down) instead of raising.
    """

    name: str = "base"

    @abstractmethod
    def send_code(
        self,
        identifier: str,
        code: str,
        context: DeliveryContext,
    ) -> DeliveryResult:
        """
        Deliver ``code`` to ``identifier``.

        Args:
            identifier: Recipient email address
            code: The plain OTP
            context: Resend flag, expiry and optional user name

        Returns:
            DeliveryResult describing the outcome
        """

    def close(self) -> None:
        """Release transport resources."""
