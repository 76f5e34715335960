"""
Admin booking endpoints: status changes and manual re-triggers of failed
side effects (proforma, invoice, e-mail, calendar), and reminder runs.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.presenters import to_reminder_response, to_transition_response
from studio_booking.db.session import get_db
from studio_booking.schemas.booking import (
    AdminBookingResponse, CalendarSyncRequest, EmailResendRequest, NotesUpdate, ReminderRequest, ReminderRunResponse,
    StatusChangeRequest, TransitionResponse,
)
from studio_booking.services.booking_service import get_booking, update_admin_notes
from studio_booking.services.integration_factory import get_lifecycle_service
from studio_booking.services.lifecycle_service import BookingLifecycleService
from studio_booking.core.security import CurrentUser, require_admin

router = APIRouter(prefix="/admin/bookings", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/{booking_id}", response_model=AdminBookingResponse)
async def get_booking_detail(booking_id: str, db: AsyncSession = Depends(get_db)):
    return await get_booking(db, booking_id)


@router.post("/{booking_id}/status", response_model=TransitionResponse)
async def change_status(
    booking_id: str,
    payload: StatusChangeRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    """
    Move a booking to the next status. Failed invoices, e-mails or calendar
    syncs do not block the change; they are listed in the response.
    """
    result = await lifecycle.transition(db, booking_id, payload.status, reason=payload.reason, actor=admin)
    return to_transition_response(result)


@router.post("/{booking_id}/no-show", response_model=TransitionResponse)
async def mark_no_show(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    result = await lifecycle.mark_no_show(db, booking_id)
    return to_transition_response(result)


@router.post("/{booking_id}/proforma", response_model=TransitionResponse)
async def regenerate_proforma(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    result = await lifecycle.regenerate_proforma(db, booking_id)
    return to_transition_response(result, status_changed=False)


@router.post("/{booking_id}/invoice", response_model=TransitionResponse)
async def regenerate_invoice(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    result = await lifecycle.regenerate_invoice(db, booking_id)
    return to_transition_response(result, status_changed=False)


@router.post("/{booking_id}/emails", response_model=TransitionResponse)
async def resend_email(
    booking_id: str,
    payload: EmailResendRequest,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    result = await lifecycle.resend_email(db, booking_id, payload.type)
    return to_transition_response(result, status_changed=False)


@router.post("/{booking_id}/calendar-sync", response_model=TransitionResponse)
async def resync_calendar(
    booking_id: str,
    payload: CalendarSyncRequest,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    result = await lifecycle.resync_calendar(db, booking_id, payload.action)
    return to_transition_response(result, status_changed=False)


@router.patch("/{booking_id}/notes", response_model=AdminBookingResponse)
async def update_notes(
    booking_id: str,
    payload: NotesUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await update_admin_notes(db, booking_id, payload.admin_notes)


@router.post("/reminders", response_model=ReminderRunResponse)
async def send_reminders(
    payload: Optional[ReminderRequest] = None,
    db: AsyncSession = Depends(get_db),
    lifecycle: BookingLifecycleService = Depends(get_lifecycle_service),
):
    """Send reminders by hand, e.g. after a missed scheduler run. Defaults to tomorrow."""
    run = await lifecycle.send_reminders(db, payload.for_date if payload else None)
    return to_reminder_response(run)
