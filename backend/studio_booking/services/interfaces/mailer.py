"""
Transactional e-mail interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

TEMPLATE_CONFIRMED = "confirmed"
TEMPLATE_PROFORMA = "proforma"
TEMPLATE_PAID = "paid"
TEMPLATE_COMPLETED = "completed"
TEMPLATE_CANCELLED = "cancelled"
TEMPLATE_CANCELLED_ADMIN = "cancelled_admin"
TEMPLATE_REMINDER = "reminder"

EMAIL_TEMPLATES = (
    TEMPLATE_CONFIRMED,
    TEMPLATE_PROFORMA,
    TEMPLATE_PAID,
    TEMPLATE_COMPLETED,
    TEMPLATE_CANCELLED,
    TEMPLATE_CANCELLED_ADMIN,
    TEMPLATE_REMINDER,
)


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error: Optional[str] = None
    skipped: bool = False


class Mailer(ABC):
    """
    Interface for e-mail transports.

    Implementations:
    - ResendMailer: Resend API (production)
    - SmtpMailer: plain SMTP, e.g. a local Mailpit inbox
    - DisabledMailer: nothing configured; every send is skipped
    """

    @abstractmethod
    async def send_email(self, to: str, template: str, data: dict[str, Any]) -> DeliveryResult:
        """
        Render `template` with `data` and deliver it to `to`.

        Never raises: failures come back as DeliveryResult(success=False).
        """
