"""
Collaborator interfaces for dependency inversion.
The lifecycle service talks to invoicing, e-mail and calendar only through
these, so back ends can be swapped (or faked in tests) without touching it.
"""

from .invoicing import InvoiceGateway, InvoiceBuyer, InvoiceLine, InvoiceRequest, InvoiceResult, ReversalResult
from .mailer import Mailer, DeliveryResult
from .calendar import CalendarSync, CalendarEvent, CalendarResult
from .disabled import UnconfiguredInvoiceGateway, DisabledMailer, DisabledCalendarSync

__all__ = [
    'InvoiceGateway', 'InvoiceBuyer', 'InvoiceLine', 'InvoiceRequest', 'InvoiceResult', 'ReversalResult',
    'Mailer', 'DeliveryResult',
    'CalendarSync', 'CalendarEvent', 'CalendarResult',
    'UnconfiguredInvoiceGateway', 'DisabledMailer', 'DisabledCalendarSync',
]
