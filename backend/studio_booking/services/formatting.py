"""
Hungarian display formatting for invoice line names and e-mails.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

_MONTHS = (
    "január", "február", "március", "április", "május", "június",
    "július", "augusztus", "szeptember", "október", "november", "december",
)
_WEEKDAYS = ("hétfő", "kedd", "szerda", "csütörtök", "péntek", "szombat", "vasárnap")


def format_date_hu(value: date, with_weekday: bool = False) -> str:
    """2026. október 24. / 2026. október 24., szombat"""
    text = f"{value.year}. {_MONTHS[value.month - 1]} {value.day}."
    if with_weekday:
        text += f", {_WEEKDAYS[value.weekday()]}"
    return text


def format_huf(amount: int) -> str:
    """98000 -> '98 000 Ft'"""
    return f"{amount:,}".replace(",", " ") + " Ft"


def net_from_gross(gross: int, vat_rate: int) -> int:
    """Unit prices are kept VAT-inclusive; invoices want the net amount."""
    net = Decimal(gross) * Decimal(100) / Decimal(100 + vat_rate)
    return int(net.quantize(Decimal(1), rounding=ROUND_HALF_UP))
