"""
Customer booking endpoints: own bookings, cancellation quote and cancel.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.presenters import to_transition_response
from studio_booking.db.session import get_db
from studio_booking.models.booking import STATUS_CANCELLED
from studio_booking.schemas.booking import BookingResponse, CancellationQuoteResponse, CancelRequest, TransitionResponse
from studio_booking.services.booking_service import build_quote, get_booking, get_user_bookings
from studio_booking.services.integration_factory import get_lifecycle_service
from studio_booking.services.lifecycle_service import BookingLifecycleService
from studio_booking.core.security import CurrentUser, get_current_user, get_current_user_id
from studio_booking.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await get_user_bookings(db, user_id)


@router.get("/{booking_id}/cancellation-quote", response_model=CancellationQuoteResponse)
async def cancellation_quote(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    """
    Preview the fee for cancelling now. Uses the same policy and clock as the
    cancel endpoint, so the quote matches what a cancel would charge today.
    """
    booking = await get_booking(db, booking_id, user_id=user_id)
    quote = await lifecycle.quote_cancellation(db, booking)
    return build_quote(booking, quote, lifecycle.today())


@router.post("/{booking_id}/cancel", response_model=TransitionResponse)
async def cancel_booking_endpoint(
    booking_id: str,
    payload: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    """Cancel an own booking. The fee follows the studio's cancellation policy."""
    result = await lifecycle.transition(db, booking_id, STATUS_CANCELLED, reason=payload.reason, actor=user)
    return to_transition_response(result)
