"""
Endpoints for the scheduler. Authenticated with CRON_SECRET, not a user token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.presenters import to_reminder_response
from studio_booking.core.security import require_cron_secret
from studio_booking.db.session import get_db
from studio_booking.schemas.booking import ReminderRunResponse
from studio_booking.services.integration_factory import get_lifecycle_service
from studio_booking.services.lifecycle_service import BookingLifecycleService

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(require_cron_secret)])


@router.get("/send-reminders", response_model=ReminderRunResponse)
async def send_reminders(
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    """Daily: remind customers of their bookings tomorrow (studio time)."""
    run = await lifecycle.send_reminders(db)
    return to_reminder_response(run)
