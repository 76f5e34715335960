"""
Invoicing agent client.

Talks JSON over HTTP to the invoicing agent, which fronts the national
invoicing provider:

  POST {INVOICING_URL}/invoices                      -> {"invoice_number", "invoice_url"}
  POST {INVOICING_URL}/invoices/{number}/storno      -> {"invoice_number"}

Error responses carry {"error": "..."}. Every failure mode (HTTP status,
transport error, malformed body) is returned as an unsuccessful result.
"""

from dataclasses import asdict
from typing import Optional

import httpx

from studio_booking.core.logging import get_logger
from studio_booking.services.interfaces.invoicing import (
    InvoiceGateway, InvoiceRequest, InvoiceResult, ReversalResult,
)

logger = get_logger(__name__)


class HttpInvoiceGateway(InvoiceGateway):

    def __init__(
        self,
        base_url: str,
        agent_key: str,
        e_invoice: bool = False,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.agent_key = agent_key
        self.e_invoice = e_invoice
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.agent_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"X-Agent-Key": self.agent_key},
            transport=self._transport,
        )

    async def _post(self, path: str, payload: dict) -> tuple[Optional[dict], Optional[str]]:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            return None, f"Invoicing agent unreachable: {e}"

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400:
            return None, body.get("error") or f"Invoicing agent returned HTTP {response.status_code}"
        if not body.get("invoice_number"):
            return None, f"Invalid response from invoicing agent: {response.text[:200]}"
        return body, None

    async def issue_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        payload = asdict(request)
        payload["e_invoice"] = self.e_invoice

        body, error = await self._post("/invoices", payload)
        if error:
            logger.error(
                "invoice_issue_failed",
                order_number=request.order_number,
                proforma=request.proforma,
                error=error,
            )
            return InvoiceResult(success=False, error=error)

        logger.info(
            "invoice_issued",
            order_number=request.order_number,
            proforma=request.proforma,
            invoice_number=body["invoice_number"],
        )
        return InvoiceResult(
            success=True,
            invoice_number=body["invoice_number"],
            invoice_url=body.get("invoice_url"),
        )

    async def reverse_invoice(self, invoice_number: str) -> ReversalResult:
        body, error = await self._post(
            f"/invoices/{invoice_number}/storno", {"e_invoice": self.e_invoice}
        )
        if error:
            logger.error("invoice_storno_failed", invoice_number=invoice_number, error=error)
            return ReversalResult(success=False, error=error)

        logger.info("invoice_reversed", invoice_number=invoice_number, storno_number=body["invoice_number"])
        return ReversalResult(success=True, reversal_number=body["invoice_number"])
