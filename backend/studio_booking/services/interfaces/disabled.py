"""
Stand-in collaborators for integrations that are not configured.
"""

from typing import Any

from studio_booking.services.interfaces.calendar import CalendarAction, CalendarEvent, CalendarResult, CalendarSync
from studio_booking.services.interfaces.invoicing import (
    InvoiceGateway, InvoiceRequest, InvoiceResult, ReversalResult,
)
from studio_booking.services.interfaces.mailer import DeliveryResult, Mailer

NOT_CONFIGURED = "Számlázás nincs beállítva"


class UnconfiguredInvoiceGateway(InvoiceGateway):
    """No invoicing credentials. The lifecycle refuses transitions that need invoices."""

    @property
    def configured(self) -> bool:
        return False

    async def issue_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        return InvoiceResult(success=False, error=NOT_CONFIGURED)

    async def reverse_invoice(self, invoice_number: str) -> ReversalResult:
        return ReversalResult(success=False, error=NOT_CONFIGURED)


class DisabledMailer(Mailer):
    """No e-mail transport configured - sends are skipped."""

    async def send_email(self, to: str, template: str, data: dict[str, Any]) -> DeliveryResult:
        return DeliveryResult(success=True, skipped=True)


class DisabledCalendarSync(CalendarSync):
    """Calendar not connected - syncs are skipped."""

    async def sync(self, event: CalendarEvent, action: CalendarAction) -> CalendarResult:
        return CalendarResult(success=True, skipped=True)
