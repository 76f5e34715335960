from studio_booking.schemas.policy import CancellationRule, CancellationPolicy, CancellationPolicyResponse
from studio_booking.schemas.booking import (
    BookingResponse, AdminBookingResponse, CancellationQuoteResponse, CancelRequest,
    StatusChangeRequest, NotesUpdate, EmailResendRequest, CalendarSyncRequest, TransitionResponse,
)

__all__ = [
    "CancellationRule", "CancellationPolicy", "CancellationPolicyResponse",
    "BookingResponse", "AdminBookingResponse", "CancellationQuoteResponse", "CancelRequest",
    "StatusChangeRequest", "NotesUpdate", "EmailResendRequest", "CalendarSyncRequest", "TransitionResponse",
]
