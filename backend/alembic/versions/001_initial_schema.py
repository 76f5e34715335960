"""Initial schema: profiles, bookings, booking extras and settings.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Profiles table (ids come from the identity provider)
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("tax_number", sa.String(50), nullable=True),
        sa.Column("billing_zip", sa.String(20), nullable=True),
        sa.Column("billing_city", sa.String(100), nullable=True),
        sa.Column("billing_street", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'customer'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('customer', 'admin')", name="check_profile_role"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("time_slot_name", sa.String(100), nullable=True),
        sa.Column("start_time", sa.String(5), nullable=True),
        sa.Column("end_time", sa.String(5), nullable=True),
        sa.Column("base_price", sa.Integer(), nullable=False),
        sa.Column("extras_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("proforma_number", sa.String(50), nullable=True),
        sa.Column("proforma_url", sa.String(500), nullable=True),
        sa.Column("proforma_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_number", sa.String(50), nullable=True),
        sa.Column("invoice_url", sa.String(500), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("storno_invoice_number", sa.String(50), nullable=True),
        sa.Column("cancellation_invoice_number", sa.String(50), nullable=True),
        sa.Column("cancellation_invoice_url", sa.String(500), nullable=True),
        sa.Column("cancellation_fee", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("calendar_event_id", sa.String(255), nullable=True),
        sa.Column("user_notes", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'paid', 'completed', 'cancelled', 'no_show')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "cancellation_fee IS NULL OR cancellation_fee >= 0",
            name="check_cancellation_fee_non_negative",
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Admin lists filter by status and sort by date; the daily schedule
    # ("what is booked on Saturday") hits the same index through booking_date.
    op.create_index("ix_bookings_status_date", "bookings", ["status", "booking_date"])

    # Booking extras
    op.create_table(
        "booking_extras",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="check_extra_quantity_positive"),
    )
    op.create_index("ix_booking_extras_booking_id", "booking_extras", ["booking_id"])

    # Settings (key/value, JSON payload)
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("booking_extras")
    op.drop_table("bookings")
    op.drop_table("profiles")
