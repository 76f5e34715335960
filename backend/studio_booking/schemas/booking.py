"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class BookingResponse(BaseModel):
    id: str
    user_id: str
    booking_date: date
    time_slot_name: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    base_price: int
    extras_price: int
    discount_amount: int
    total_price: int
    status: str
    proforma_number: Optional[str]
    proforma_url: Optional[str]
    invoice_number: Optional[str]
    invoice_url: Optional[str]
    paid_at: Optional[datetime]
    cancellation_fee: Optional[int]
    cancellation_reason: Optional[str]
    cancellation_invoice_number: Optional[str]
    cancellation_invoice_url: Optional[str]
    cancelled_at: Optional[datetime]
    user_notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminBookingResponse(BookingResponse):
    proforma_sent_at: Optional[datetime]
    storno_invoice_number: Optional[str]
    calendar_event_id: Optional[str]
    admin_notes: Optional[str]
    version: int


class CancellationQuoteResponse(BaseModel):
    booking_id: str
    cancellable: bool
    reason: Optional[str] = None
    fee: int
    fee_percent: int
    days_until: int
    refund_amount: int


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class StatusChangeRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=20)
    reason: Optional[str] = Field(None, max_length=1000)


class NotesUpdate(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=5000)


class EmailResendRequest(BaseModel):
    type: Literal["confirmed", "proforma", "paid", "completed", "cancelled"] = "confirmed"


class CalendarSyncRequest(BaseModel):
    action: Literal["create", "update", "delete"]


class SideEffectResponse(BaseModel):
    step: str
    outcome: str
    detail: Optional[str] = None


class CancellationSummary(BaseModel):
    fee: int
    fee_percent: int
    days_until: int
    refund_amount: int
    storno_invoice_number: Optional[str] = None
    cancellation_invoice_number: Optional[str] = None


class TransitionResponse(BaseModel):
    booking_id: str
    previous_status: str
    status: str
    message: str
    side_effects: list[SideEffectResponse]
    errors: list[str]
    cancellation: Optional[CancellationSummary] = None


class ReminderRequest(BaseModel):
    for_date: Optional[date] = None


class ReminderDelivery(BaseModel):
    booking_id: str
    status: str
    outcome: str
    detail: Optional[str] = None


class ReminderRunResponse(BaseModel):
    for_date: date
    sent: int
    failed: int
    results: list[ReminderDelivery]
