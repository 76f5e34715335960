"""
Integration factory.
Wires the lifecycle service to the back ends selected by configuration.

Selection:
- Invoicing: HTTP agent when INVOICING_URL and INVOICING_AGENT_KEY are set,
  otherwise UnconfiguredInvoiceGateway (transitions needing invoices are refused)
- E-mail: Resend when RESEND_API_KEY is set, SMTP when SMTP_HOST is set,
  otherwise DisabledMailer (sends are skipped)
- Calendar: Google Calendar when calendar id and token are set,
  otherwise DisabledCalendarSync
"""

from typing import Optional

from studio_booking.core.config import Settings, get_settings
from studio_booking.core.logging import get_logger
from studio_booking.services.calendar_service import GoogleCalendarSync
from studio_booking.services.email_service import ResendMailer, SmtpMailer
from studio_booking.services.interfaces import (
    CalendarSync, DisabledCalendarSync, DisabledMailer, InvoiceGateway, Mailer, UnconfiguredInvoiceGateway,
)
from studio_booking.services.invoicing_service import HttpInvoiceGateway
from studio_booking.services.lifecycle_service import BookingLifecycleService
from studio_booking.services.lock_service import BookingLock
from studio_booking.services.policy_service import get_policy_store

logger = get_logger(__name__)


def build_invoice_gateway(settings: Settings) -> InvoiceGateway:
    if settings.INVOICING_URL and settings.INVOICING_AGENT_KEY:
        return HttpInvoiceGateway(
            base_url=settings.INVOICING_URL,
            agent_key=settings.INVOICING_AGENT_KEY,
            e_invoice=settings.INVOICING_E_INVOICE,
            timeout=settings.INTEGRATION_TIMEOUT,
        )
    return UnconfiguredInvoiceGateway()


def build_mailer(settings: Settings) -> Mailer:
    if settings.RESEND_API_KEY:
        return ResendMailer(api_key=settings.RESEND_API_KEY, from_address=settings.EMAIL_FROM)
    if settings.SMTP_HOST:
        return SmtpMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            from_address=settings.EMAIL_FROM,
            timeout=settings.INTEGRATION_TIMEOUT,
        )
    return DisabledMailer()


def build_calendar(settings: Settings) -> CalendarSync:
    if settings.GOOGLE_CALENDAR_ID and settings.GOOGLE_CALENDAR_ACCESS_TOKEN:
        return GoogleCalendarSync(
            calendar_id=settings.GOOGLE_CALENDAR_ID,
            access_token=settings.GOOGLE_CALENDAR_ACCESS_TOKEN,
            timezone=settings.STUDIO_TIMEZONE,
            timeout=settings.INTEGRATION_TIMEOUT,
        )
    return DisabledCalendarSync()


def build_lifecycle_service(settings: Optional[Settings] = None) -> BookingLifecycleService:
    settings = settings or get_settings()
    service = BookingLifecycleService(
        invoicing=build_invoice_gateway(settings),
        mailer=build_mailer(settings),
        calendar=build_calendar(settings),
        policy_store=get_policy_store(),
        lock=BookingLock(settings.BOOKING_LOCK_TTL_MS),
        settings=settings,
    )
    logger.info(
        "lifecycle_integrations",
        invoicing=type(service.invoicing).__name__,
        mailer=type(service.mailer).__name__,
        calendar=type(service.calendar).__name__,
    )
    return service


# Singleton instance
_service: Optional[BookingLifecycleService] = None

def get_lifecycle_service() -> BookingLifecycleService:
    """FastAPI dependency returning the process-wide lifecycle service."""
    global _service
    if _service is None:
        _service = build_lifecycle_service()
    return _service
