"""
Turns lifecycle results into API responses.

The lifecycle service reports structured side effects; the admin screen shows
them as one " | "-joined line, e.g.

  Státusz módosítva! | Díjbekérő: D-2024-001 | Email elküldve
"""

from typing import Optional

from fastapi import HTTPException, status

from studio_booking.schemas.booking import (
    CancellationSummary, ReminderDelivery, ReminderRunResponse, SideEffectResponse, TransitionResponse,
)
from studio_booking.services.lifecycle_service import (
    OUTCOME_FAILED, OUTCOME_OK,
    REJECT_ACTION_NOT_ALLOWED, REJECT_BOOKING_IN_PAST, REJECT_CONFLICT, REJECT_FORBIDDEN,
    REJECT_INVALID_STATUS, REJECT_INVALID_TRANSITION, REJECT_NOT_CANCELLABLE, REJECT_NOT_CONFIGURED,
    REJECT_NOT_FOUND, REJECT_STORNO_FAILED,
    STEP_ADMIN_EMAIL, STEP_CALENDAR, STEP_CANCELLATION_INVOICE, STEP_EMAIL, STEP_INVOICE, STEP_PROFORMA, STEP_STORNO,
    ReminderRun, SideEffect, TransitionResult,
)

STATUS_CHANGED = "Státusz módosítva!"

REJECTION_STATUS_CODES = {
    REJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    REJECT_FORBIDDEN: status.HTTP_403_FORBIDDEN,
    REJECT_INVALID_STATUS: status.HTTP_400_BAD_REQUEST,
    REJECT_INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    REJECT_NOT_CANCELLABLE: status.HTTP_400_BAD_REQUEST,
    REJECT_BOOKING_IN_PAST: status.HTTP_400_BAD_REQUEST,
    REJECT_ACTION_NOT_ALLOWED: status.HTTP_400_BAD_REQUEST,
    REJECT_CONFLICT: status.HTTP_409_CONFLICT,
    REJECT_STORNO_FAILED: status.HTTP_502_BAD_GATEWAY,
    REJECT_NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# (label on success, label on failure); None hides the outcome
_LABELS = {
    STEP_PROFORMA: ("Díjbekérő: {reference}", "Díjbekérő hiba: {detail}"),
    STEP_INVOICE: ("Számla: {reference}", "Számla hiba: {detail}"),
    STEP_STORNO: ("Sztornó: {reference}", "Sztornó hiba: {detail}"),
    STEP_CANCELLATION_INVOICE: ("Lemondási díj számla: {reference}", "Lemondási díj számla hiba: {detail}"),
    STEP_EMAIL: ("Email elküldve", "Email hiba: {detail}"),
    STEP_ADMIN_EMAIL: ("Admin értesítve", "Admin email hiba: {detail}"),
    STEP_CALENDAR: ("Naptár szinkronizálva", None),
}


def describe(effect: SideEffect) -> Optional[str]:
    success, failure = _LABELS.get(effect.step, (None, None))
    if effect.outcome == OUTCOME_OK:
        template = success
    elif effect.outcome == OUTCOME_FAILED:
        template = failure
    else:
        template = None
    if template is None:
        return None
    return template.format(reference=effect.reference or "", detail=effect.detail or "ismeretlen hiba")


def summarize(result: TransitionResult, headline: Optional[str] = None) -> str:
    parts = [headline] if headline else []
    parts.extend(line for line in map(describe, result.side_effects) if line)
    return " | ".join(parts) or "Kész"


def raise_for_rejection(result: TransitionResult) -> None:
    """Rejected transitions become HTTP errors carrying the rejection message."""
    if result.rejection is None:
        return
    raise HTTPException(
        status_code=REJECTION_STATUS_CODES.get(result.rejection.code, status.HTTP_400_BAD_REQUEST),
        detail=result.rejection.message,
    )


def to_transition_response(result: TransitionResult, status_changed: bool = True) -> TransitionResponse:
    raise_for_rejection(result)

    cancellation = None
    if result.cancellation is not None:
        outcome = result.cancellation
        cancellation = CancellationSummary(
            fee=outcome.fee,
            fee_percent=outcome.fee_percent,
            days_until=outcome.days_until,
            refund_amount=outcome.refund_amount,
            storno_invoice_number=outcome.storno_invoice_number,
            cancellation_invoice_number=outcome.cancellation_invoice_number,
        )

    return TransitionResponse(
        booking_id=result.booking_id,
        previous_status=result.previous_status,
        status=result.new_status,
        message=summarize(result, STATUS_CHANGED if status_changed else None),
        side_effects=[
            SideEffectResponse(step=e.step, outcome=e.outcome, detail=e.detail or e.reference)
            for e in result.side_effects
        ],
        errors=result.errors,
        cancellation=cancellation,
    )


def to_reminder_response(run: ReminderRun) -> ReminderRunResponse:
    results = []
    for result in run.results:
        effect = result.side_effects[-1]
        results.append(ReminderDelivery(
            booking_id=result.booking_id,
            status=result.new_status,
            outcome=effect.outcome,
            detail=effect.detail,
        ))
    return ReminderRunResponse(for_date=run.for_date, sent=run.sent, failed=run.failed, results=results)
