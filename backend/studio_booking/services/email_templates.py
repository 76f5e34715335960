"""
Subject lines and bodies for the lifecycle e-mails.

Markup is deliberately minimal; the customer-facing design lives in the web
front end's template package.
"""

from html import escape
from typing import Any

from studio_booking.services.interfaces.mailer import (
    TEMPLATE_CANCELLED, TEMPLATE_CANCELLED_ADMIN, TEMPLATE_COMPLETED,
    TEMPLATE_CONFIRMED, TEMPLATE_PAID, TEMPLATE_PROFORMA, TEMPLATE_REMINDER,
)


class UnknownTemplateError(ValueError):
    pass


def _details(data: dict[str, Any]) -> str:
    return (
        f"<p><strong>Dátum:</strong> {escape(data['booking_date'])}<br>"
        f"<strong>Időpont:</strong> {escape(data['time_slot'])}<br>"
        f"<strong>Foglalás összege:</strong> {escape(data['total_price'])}</p>"
    )


def _link(url: str, label: str) -> str:
    return f'<p><a href="{escape(url, quote=True)}">{escape(label)}</a></p>'


def _wrap(data: dict[str, Any], body: str) -> str:
    return (
        f"<h1>Kedves {escape(data['customer_name'])}!</h1>"
        f"{body}"
        f"<p>Üdvözlettel,<br><strong>{escape(data['studio_name'])}</strong></p>"
    )


def _confirmed(data):
    body = "<p>Foglalását visszaigazoltuk.</p>" + _details(data)
    return "Foglalása visszaigazolva - StudyU", _wrap(data, body)


def _proforma(data):
    body = (
        f"<p>Elkészült a foglalásához tartozó díjbekérő: <strong>{escape(data['proforma_number'])}</strong>.</p>"
        + _details(data)
        + "<p>Kérjük, a díjbekérőn feltüntetett határidőig szíveskedjen az összeget átutalni.</p>"
    )
    if data.get("proforma_url"):
        body += _link(data["proforma_url"], "Díjbekérő megtekintése")
    return "Díjbekérő - StudyU", _wrap(data, body)


def _paid(data):
    body = "<p>Köszönjük, a foglalás díját megkaptuk.</p>" + _details(data)
    if data.get("invoice_url"):
        body += _link(data["invoice_url"], "Számla megtekintése")
    return "Fizetés visszaigazolva - StudyU", _wrap(data, body)


def _completed(data):
    body = "<p>Köszönjük, hogy nálunk fotózott! Reméljük, hamarosan újra találkozunk.</p>" + _details(data)
    return "Köszönjük a látogatást - StudyU", _wrap(data, body)


def _cancelled(data):
    body = "<p>Az alábbi foglalása lemondásra került.</p>" + _details(data)
    fee = data.get("fee_amount", 0)
    if data.get("was_paid"):
        body += f"<p>Eredeti számla: <strong>{escape(data['invoice_number'])}</strong> - Sztornózva</p>"
        if fee > 0:
            body += (
                f"<p>Lemondási díj: <strong>{escape(data['cancellation_fee'])}</strong><br>"
                f"Visszatérítés összege: <strong>{escape(data['refund_amount'])}</strong></p>"
            )
        else:
            body += "<p>A teljes összeg visszatérítésre kerül.</p>"
        body += "<p>A visszatérítés az eredeti fizetési módon történik.</p>"
    elif fee > 0:
        body += f"<p>Lemondási díj: <strong>{escape(data['cancellation_fee'])}</strong></p>"
        body += "<p>Kérjük, a számlán feltüntetett határidőig szíveskedjen az összeget átutalni.</p>"
    else:
        body += "<p>A lemondás ingyenes volt.</p>"
    if fee > 0 and data.get("cancellation_invoice_url"):
        body += _link(data["cancellation_invoice_url"], "Lemondási díj számla")
    return "Foglalás lemondva - StudyU Fotóstúdió", _wrap(data, body)


def _reminder(data):
    body = (
        "<p>Szeretnénk emlékeztetni, hogy holnap foglalása van a stúdióban.</p>"
        f"<p><strong>Dátum:</strong> {escape(data['booking_date'])}<br>"
        f"<strong>Időpont:</strong> {escape(data['time_slot'])}<br>"
        f"<strong>Helyszín:</strong> {escape(data['studio_address'])}</p>"
        "<p>Kérjük, érkezzen időben! Ha bármilyen változás történt, kérjük jelezze felénk.</p>"
    )
    return "Emlékeztető: holnapi foglalás - StudyU", _wrap(data, body)


def _cancelled_admin(data):
    lines = [
        "Foglalás lemondva",
        "",
        f"Ügyfél: {data['customer_name']} ({data['customer_email']})",
        f"Dátum: {data['booking_date']}",
        f"Időpont: {data['time_slot']}",
        f"Eredeti összeg: {data['total_price']}",
        f"Lemondási díj: {data['cancellation_fee']}",
    ]
    if data.get("was_paid"):
        lines.append(f"Visszatérítés: {data['refund_amount']}")
        lines.append(f"Sztornó számlaszám: {data.get('storno_invoice_number') or '-'}")
    if data.get("cancellation_invoice_number"):
        lines.append(f"Lemondási díj számla: {data['cancellation_invoice_number']}")
    if data.get("reason"):
        lines.append(f"Lemondás oka: {data['reason']}")
    lines += ["", f"Foglalás ID: {data['booking_id']}"]
    return f"[Admin] Foglalás lemondva - {data['customer_name']}", "\n".join(lines)


_HTML_RENDERERS = {
    TEMPLATE_CONFIRMED: _confirmed,
    TEMPLATE_PROFORMA: _proforma,
    TEMPLATE_PAID: _paid,
    TEMPLATE_COMPLETED: _completed,
    TEMPLATE_CANCELLED: _cancelled,
    TEMPLATE_REMINDER: _reminder,
}


def render(template: str, data: dict[str, Any]) -> tuple[str, str, bool]:
    """Returns (subject, body, is_html)."""
    if template == TEMPLATE_CANCELLED_ADMIN:
        subject, text = _cancelled_admin(data)
        return subject, text, False
    renderer = _HTML_RENDERERS.get(template)
    if renderer is None:
        raise UnknownTemplateError(f"Unknown e-mail template: {template}")
    subject, html = renderer(data)
    return subject, html, True
