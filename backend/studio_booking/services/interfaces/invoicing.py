"""
Invoicing gateway interface.
Issues proforma, final and cancellation-fee invoices and reverses (storno)
issued invoices.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InvoiceBuyer:
    name: str
    zip: str = "0000"
    city: str = "Budapest"
    address: str = "-"
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_number: Optional[str] = None


@dataclass(frozen=True)
class InvoiceLine:
    name: str
    quantity: int
    unit_price_net: int
    vat_rate: int
    unit: str = "db"


@dataclass(frozen=True)
class InvoiceRequest:
    buyer: InvoiceBuyer
    items: list[InvoiceLine]
    order_number: str
    comment: str = ""
    payment_method: str = "transfer"  # transfer, cash, card
    payment_deadline_days: Optional[int] = None
    currency: str = "HUF"
    language: str = "hu"
    proforma: bool = False
    proforma_number: Optional[str] = None  # final invoice settles this proforma
    paid: bool = False


@dataclass(frozen=True)
class InvoiceResult:
    success: bool
    invoice_number: Optional[str] = None
    invoice_url: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ReversalResult:
    success: bool
    reversal_number: Optional[str] = None
    error: Optional[str] = None


class InvoiceGateway(ABC):
    """
    Interface for invoicing back ends.

    Implementations:
    - HttpInvoiceGateway: JSON over HTTP to the invoicing agent
    - UnconfiguredInvoiceGateway: no credentials; every call fails
    """

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether credentials are present. Checked before any invoicing step runs."""

    @abstractmethod
    async def issue_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        """
        Issue an invoice (or proforma when request.proforma is set).

        Never raises: transport and API errors come back as
        InvoiceResult(success=False, error=...).
        """

    @abstractmethod
    async def reverse_invoice(self, invoice_number: str) -> ReversalResult:
        """Issue a storno document reversing `invoice_number`."""
