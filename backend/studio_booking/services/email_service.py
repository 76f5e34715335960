"""
E-mail transports.

Production sends through Resend; local development points SMTP_HOST at a
Mailpit-style catch-all inbox. Both render through email_templates and never
raise into the caller.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Any

import resend

from studio_booking.core.logging import get_logger
from studio_booking.services.email_templates import UnknownTemplateError, render
from studio_booking.services.interfaces.mailer import DeliveryResult, Mailer

logger = get_logger(__name__)


class ResendMailer(Mailer):

    def __init__(self, api_key: str, from_address: str):
        resend.api_key = api_key
        self.from_address = from_address

    async def send_email(self, to: str, template: str, data: dict[str, Any]) -> DeliveryResult:
        try:
            subject, body, is_html = render(template, data)
        except (UnknownTemplateError, KeyError) as e:
            logger.error("email_render_failed", template=template, error=str(e))
            return DeliveryResult(success=False, error=str(e))

        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html" if is_html else "text": body,
        }
        try:
            # SDK is synchronous
            await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("email_send_failed", transport="resend", template=template, error=str(e))
            return DeliveryResult(success=False, error=str(e))

        logger.info("email_sent", transport="resend", template=template)
        return DeliveryResult(success=True)


class SmtpMailer(Mailer):

    def __init__(self, host: str, port: int, from_address: str, timeout: float = 15.0):
        self.host = host
        self.port = port
        self.from_address = from_address
        self.timeout = timeout

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.send_message(message)

    async def send_email(self, to: str, template: str, data: dict[str, Any]) -> DeliveryResult:
        try:
            subject, body, is_html = render(template, data)
        except (UnknownTemplateError, KeyError) as e:
            logger.error("email_render_failed", template=template, error=str(e))
            return DeliveryResult(success=False, error=str(e))

        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        if is_html:
            message.set_content("Az üzenet megtekintéséhez HTML-képes levelezőre van szükség.")
            message.add_alternative(body, subtype="html")
        else:
            message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_send_failed", transport="smtp", template=template, error=str(e))
            return DeliveryResult(success=False, error=str(e))

        logger.info("email_sent", transport="smtp", template=template)
        return DeliveryResult(success=True)
