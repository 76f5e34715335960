"""
Booking reads and small admin edits.

Status changes do not live here: they go through the lifecycle service, which
owns the guards, the side effects and the conditional status write.
"""

from datetime import date
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.core.logging import get_logger
from studio_booking.models.booking import Booking, STATUS_CANCELLED
from studio_booking.schemas.booking import CancellationQuoteResponse
from studio_booking.services.fee_calculator import FeeQuote
from studio_booking.services.lifecycle_service import check_transition

logger = get_logger(__name__)


async def get_user_bookings(db: AsyncSession, user_id: str) -> list[Booking]:
    """Get all bookings for a user, soonest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.booking_date.asc(), Booking.start_time.asc())
    )
    return list(result.scalars().all())


async def get_booking(db: AsyncSession, booking_id: str, user_id: Optional[str] = None) -> Booking:
    """
    Fetch one booking. With `user_id` the booking must belong to that user;
    someone else's booking is reported as missing.
    """
    query = select(Booking).where(Booking.id == booking_id)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    result = await db.execute(query)
    booking = result.scalar_one_or_none()

    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Foglalás nem található",
        )
    return booking


async def update_admin_notes(db: AsyncSession, booking_id: str, notes: Optional[str]) -> Booking:
    booking = await get_booking(db, booking_id)
    booking.admin_notes = notes or None
    await db.flush()

    logger.info("admin_notes_updated", booking_id=booking_id, length=len(notes or ""))
    return booking


def build_quote(booking: Booking, quote: FeeQuote, today: date) -> CancellationQuoteResponse:
    """What cancelling right now would cost, and whether it is allowed at all."""
    rejection = check_transition(booking.status, STATUS_CANCELLED, booking.booking_date, today)
    return CancellationQuoteResponse(
        booking_id=booking.id,
        cancellable=rejection is None,
        reason=rejection.message if rejection else None,
        fee=quote.fee,
        fee_percent=quote.fee_percent,
        days_until=quote.days_until,
        refund_amount=quote.refund_for(booking.total_price) if booking.is_paid else 0,
    )
