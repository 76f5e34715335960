"""
Booking model representing one studio reservation and its billing trail.

Key design decisions:
- Money columns are whole Forint integers (no fractional currency unit)
- `version` column enables optimistic locking for lifecycle writes
- Invoice numbers are stored per document so a failed step can be re-run
  from the admin screen without re-issuing the documents that succeeded
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin, new_uuid

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PAID = "paid"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"

BOOKING_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_PAID,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    booking_date = Column(Date, nullable=False)
    time_slot_name = Column(String(100), nullable=True)
    start_time = Column(String(5), nullable=True)  # HH:MM
    end_time = Column(String(5), nullable=True)

    base_price = Column(Integer, nullable=False)
    extras_price = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    total_price = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=STATUS_PENDING)

    proforma_number = Column(String(50), nullable=True)
    proforma_url = Column(String(500), nullable=True)
    proforma_sent_at = Column(DateTime(timezone=True), nullable=True)
    invoice_number = Column(String(50), nullable=True)
    invoice_url = Column(String(500), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    storno_invoice_number = Column(String(50), nullable=True)
    cancellation_invoice_number = Column(String(50), nullable=True)
    cancellation_invoice_url = Column(String(500), nullable=True)

    cancellation_fee = Column(Integer, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    calendar_event_id = Column(String(255), nullable=True)
    user_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    profile = relationship("Profile", back_populates="bookings", lazy="selectin")
    extras = relationship(
        "BookingExtra",
        back_populates="booking",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'paid', 'completed', 'cancelled', 'no_show')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "cancellation_fee IS NULL OR cancellation_fee >= 0",
            name="check_cancellation_fee_non_negative",
        ),
        # Admin list screens filter by status and sort by date
        Index("ix_bookings_status_date", "status", "booking_date"),
    )

    @property
    def is_paid(self) -> bool:
        return self.status == STATUS_PAID and bool(self.invoice_number)

    @property
    def time_slot_label(self) -> str:
        if self.time_slot_name and self.start_time and self.end_time:
            return f"{self.time_slot_name} ({self.start_time} - {self.end_time})"
        if self.start_time and self.end_time:
            return f"Egyedi időpont ({self.start_time} - {self.end_time})"
        return self.time_slot_name or ""

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, date={self.booking_date}, status={self.status})>"


class BookingExtra(Base):
    __tablename__ = "booking_extras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)

    booking = relationship("Booking", back_populates="extras")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_extra_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<BookingExtra(booking={self.booking_id}, name={self.name}, qty={self.quantity})>"
