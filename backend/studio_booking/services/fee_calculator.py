"""
Cancellation fee calculation.

FEE POLICY
==========

A policy is a set of tiers (days_before, fee_percent) read as a step function
over the notice period:

  days_until >= 7  ->   0%
  days_until >= 3  ->  50%
  days_until >= 2  ->  70%
  days_until >= 1  -> 100%
  otherwise        -> 100%   (no tier matches: full price)

Day counting:
  days_until is the difference between the booking date and today's date in
  the studio timezone. A booking later today is 0 days away, tomorrow is 1,
  regardless of the time of day the request arrives. Past bookings yield a
  negative number, which falls below every tier and costs the full price.
  Guarding against cancelling past bookings is the lifecycle service's job.

Rounding:
  Half-up to the nearest Forint (68600.5 -> 68601), not Python's default
  banker's rounding.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

from studio_booking.core.config import get_settings
from studio_booking.schemas.policy import CancellationRule

FULL_FEE_PERCENT = 100

DEFAULT_CANCELLATION_POLICY: tuple[CancellationRule, ...] = (
    CancellationRule(days_before=7, fee_percent=0),
    CancellationRule(days_before=3, fee_percent=50),
    CancellationRule(days_before=2, fee_percent=70),
    CancellationRule(days_before=1, fee_percent=100),
)


@dataclass(frozen=True)
class FeeQuote:
    fee: int
    fee_percent: int
    days_until: int

    def refund_for(self, total_price: int) -> int:
        return total_price - self.fee


def studio_today() -> date:
    """Current calendar date in the studio's timezone."""
    return datetime.now(ZoneInfo(get_settings().STUDIO_TIMEZONE)).date()


def days_until(booking_date: date, today: Optional[date] = None) -> int:
    return (booking_date - (today or studio_today())).days


def percent_of(amount: int, percent: int) -> int:
    value = Decimal(amount) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _coerce_rules(policy: Iterable[Union[CancellationRule, dict]]) -> list[CancellationRule]:
    return [
        rule if isinstance(rule, CancellationRule) else CancellationRule.model_validate(rule)
        for rule in policy
    ]


def fee_percent_for(days: int, policy: Iterable[Union[CancellationRule, dict]]) -> int:
    """Largest threshold not exceeding the notice period wins."""
    for rule in sorted(_coerce_rules(policy), key=lambda r: r.days_before, reverse=True):
        if rule.days_before <= days:
            return rule.fee_percent
    return FULL_FEE_PERCENT


def calculate_cancellation_fee(
    booking_date: date,
    total_price: int,
    policy: Optional[Iterable[Union[CancellationRule, dict]]] = None,
    today: Optional[date] = None,
) -> FeeQuote:
    """
    Compute the fee for cancelling a booking on `today`.

    Pure apart from reading the clock when `today` is omitted. An empty or
    missing policy falls back to DEFAULT_CANCELLATION_POLICY.
    """
    if isinstance(booking_date, datetime):
        booking_date = booking_date.date()
    if not isinstance(booking_date, date):
        raise ValueError(f"booking_date must be a date, got {type(booking_date).__name__}")
    if isinstance(total_price, bool) or not isinstance(total_price, int):
        raise ValueError("total_price must be an integer amount of Forint")
    if total_price < 0:
        raise ValueError("total_price must not be negative")

    rules = list(policy) if policy else list(DEFAULT_CANCELLATION_POLICY)
    remaining = days_until(booking_date, today)
    percent = fee_percent_for(remaining, rules)

    return FeeQuote(
        fee=percent_of(total_price, percent),
        fee_percent=percent,
        days_until=remaining,
    )
