"""
Tests for booking lifecycle transitions and their side effects.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.presenters import summarize, STATUS_CHANGED
from studio_booking.core.security import CurrentUser, ROLE_ADMIN, ROLE_CUSTOMER
from studio_booking.models import Booking, BookingExtra
from studio_booking.schemas.policy import CancellationPolicy
from studio_booking.services.lifecycle_service import (
    BookingLifecycleService, OUTCOME_FAILED, OUTCOME_OK, OUTCOME_SKIPPED, check_transition,
)
from studio_booking.services.interfaces import DisabledCalendarSync
from studio_booking.services.policy_service import SettingsPolicyStore

from conftest import (
    FIXED_NOW, BusyLock, InterleavingInvoiceGateway, RacingLock, RecordingCalendar, RecordingInvoiceGateway, RecordingMailer,
)

ADMIN = CurrentUser(id="admin-0001", role=ROLE_ADMIN)


def steps(result):
    return [(effect.step, effect.outcome) for effect in result.side_effects]


def service(invoicing=None, mailer=None, calendar=None, lock=None) -> BookingLifecycleService:
    return BookingLifecycleService(
        invoicing=invoicing or RecordingInvoiceGateway(),
        mailer=mailer or RecordingMailer(),
        calendar=calendar or RecordingCalendar(),
        policy_store=SettingsPolicyStore(),
        lock=lock,
        clock=lambda: FIXED_NOW,
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def test_transition_table():
    today = date(2026, 3, 10)
    future = date(2026, 3, 20)
    assert check_transition("pending", "confirmed", future, today) is None
    assert check_transition("confirmed", "paid", future, today) is None
    assert check_transition("paid", "completed", future, today) is None
    assert check_transition("pending", "paid", future, today).code == "invalid_transition"
    assert check_transition("completed", "paid", future, today).code == "invalid_transition"
    assert check_transition("confirmed", "no_show", future, today).code == "invalid_transition"
    assert check_transition("pending", "archived", future, today).code == "invalid_status"


def test_cancel_guards_are_distinct():
    today = date(2026, 3, 10)
    assert check_transition("cancelled", "cancelled", date(2026, 3, 20), today).code == "not_cancellable_status"
    assert check_transition("completed", "cancelled", date(2026, 3, 20), today).code == "not_cancellable_status"
    rejection = check_transition("paid", "cancelled", today, today)
    assert rejection.code == "booking_in_past"
    assert rejection.message == "Múltbeli foglalás nem mondható le"


@pytest.mark.asyncio
async def test_cancelling_cancelled_booking_does_nothing(db_session, lifecycle, make_booking, invoicing, mailer, calendar):
    booking = await make_booking(status="cancelled")

    result = await lifecycle.transition(db_session, booking.id, "cancelled", actor=ADMIN)

    assert result.rejection.code == "not_cancellable_status"
    assert result.rejection.message == "Ez a foglalás nem mondható le"
    assert invoicing.calls == [] and mailer.sent == [] and calendar.calls == []
    await db_session.refresh(booking)
    assert booking.version == 1


@pytest.mark.asyncio
async def test_cannot_cancel_booking_today(db_session, lifecycle, make_booking, invoicing):
    booking = await make_booking(status="confirmed", days_ahead=0)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.rejection.code == "booking_in_past"
    assert invoicing.calls == []


@pytest.mark.asyncio
async def test_unknown_booking(db_session, lifecycle):
    result = await lifecycle.transition(db_session, "does-not-exist", "confirmed")
    assert result.rejection.code == "not_found"
    assert not result.committed


@pytest.mark.asyncio
async def test_customer_cannot_touch_someone_elses_booking(db_session, lifecycle, make_booking, other_customer):
    booking = await make_booking(status="pending")
    actor = CurrentUser(id=other_customer.id, role=ROLE_CUSTOMER)

    result = await lifecycle.transition(db_session, booking.id, "cancelled", actor=actor)

    assert result.rejection.code == "not_found"


@pytest.mark.asyncio
async def test_customer_may_only_cancel(db_session, lifecycle, make_booking, customer):
    booking = await make_booking(status="pending")
    actor = CurrentUser(id=customer.id, role=ROLE_CUSTOMER)

    result = await lifecycle.transition(db_session, booking.id, "confirmed", actor=actor)

    assert result.rejection.code == "forbidden"


# ---------------------------------------------------------------------------
# Forward transitions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_confirm_issues_proforma_and_threads_number_into_mail(
    db_session, lifecycle, make_booking, invoicing, mailer, calendar
):
    booking = await make_booking(status="pending", total_price=50000)

    result = await lifecycle.transition(db_session, booking.id, "confirmed", actor=ADMIN)

    assert result.committed
    assert (result.previous_status, result.new_status) == ("pending", "confirmed")
    assert steps(result) == [
        ("proforma", OUTCOME_OK), ("email", OUTCOME_OK), ("email", OUTCOME_OK), ("calendar", OUTCOME_OK),
    ]
    assert mailer.templates == ["confirmed", "proforma"]
    assert mailer.sent[1][0] == "anna@example.com"
    assert mailer.sent[1][2]["proforma_number"] == "D-MIS-100"
    assert calendar.actions == ["create"]

    request = invoicing.issued[0]
    assert request.proforma is True
    assert request.order_number == booking.id
    assert request.payment_deadline_days == 8
    assert request.buyer.name == "Kiss Anna"
    assert request.items[0].name == "Stúdió bérlés - Délelőtt (09:00 - 13:00) (2026. március 20.)"
    assert request.items[0].unit_price_net == 39370

    await db_session.refresh(booking)
    assert booking.status == "confirmed"
    assert booking.proforma_number == "D-MIS-100"
    assert booking.calendar_event_id == f"evt-{booking.id[:8]}"
    assert booking.version == 2

    assert summarize(result, STATUS_CHANGED) == (
        "Státusz módosítva! | Díjbekérő: D-MIS-100 | Email elküldve | Email elküldve | Naptár szinkronizálva"
    )


@pytest.mark.asyncio
async def test_confirm_with_extras_and_discount_lists_every_line(db_session, lifecycle, make_booking, invoicing):
    booking = await make_booking(status="pending", total_price=60000, discount_amount=5000)
    booking.base_price = 50000
    booking.extras.append(BookingExtra(name="Háttérpapír", quantity=3, unit_price=5000, total_price=15000))
    await db_session.commit()

    await lifecycle.transition(db_session, booking.id, "confirmed")

    names = [line.name for line in invoicing.issued[0].items]
    assert names[1:] == ["Háttérpapír", "Kedvezmény"]
    assert invoicing.issued[0].items[1].quantity == 3
    assert invoicing.issued[0].items[2].unit_price_net < 0


@pytest.mark.asyncio
async def test_proforma_failure_does_not_block_confirmation(db_session, make_booking, mailer):
    lifecycle = service(invoicing=RecordingInvoiceGateway(fail_issue=True), mailer=mailer)
    booking = await make_booking(status="pending")

    result = await lifecycle.transition(db_session, booking.id, "confirmed")

    assert result.committed
    assert result.new_status == "confirmed"
    assert ("proforma", OUTCOME_FAILED) in steps(result)
    assert mailer.templates == ["confirmed"]
    assert result.errors == ["proforma: Agent timeout"]
    assert "Díjbekérő hiba: Agent timeout" in summarize(result, STATUS_CHANGED)


@pytest.mark.asyncio
async def test_confirm_refused_without_invoicing_config(db_session, make_booking):
    mailer, calendar = RecordingMailer(), RecordingCalendar()
    lifecycle = service(invoicing=RecordingInvoiceGateway(configured=False), mailer=mailer, calendar=calendar)
    booking = await make_booking(status="pending")

    result = await lifecycle.transition(db_session, booking.id, "confirmed")

    assert result.rejection.code == "integration_not_configured"
    assert mailer.sent == [] and calendar.calls == []
    await db_session.refresh(booking)
    assert booking.status == "pending"


@pytest.mark.asyncio
async def test_confirm_with_existing_proforma_needs_no_invoicing(db_session, make_booking):
    invoicing = RecordingInvoiceGateway(configured=False)
    mailer = RecordingMailer()
    lifecycle = service(invoicing=invoicing, mailer=mailer)
    booking = await make_booking(status="pending", proforma_number="D-MIS-9")

    result = await lifecycle.transition(db_session, booking.id, "confirmed")

    assert result.committed
    assert invoicing.calls == []
    assert mailer.sent[1][2]["proforma_number"] == "D-MIS-9"


@pytest.mark.asyncio
async def test_mark_paid_issues_final_invoice(db_session, lifecycle, make_booking, invoicing, mailer, calendar):
    booking = await make_booking(status="confirmed", proforma_number="D-MIS-7", calendar_event_id="evt-1")

    result = await lifecycle.transition(db_session, booking.id, "paid", actor=ADMIN)

    assert result.committed
    request = invoicing.issued[0]
    assert request.proforma is False
    assert request.paid is True
    assert request.proforma_number == "D-MIS-7"
    assert mailer.templates == ["paid"]
    assert mailer.sent[0][2]["invoice_url"] == "https://invoices.test/E-MIS-100.pdf"
    assert calendar.actions == ["update"]

    await db_session.refresh(booking)
    assert booking.invoice_number == "E-MIS-100"
    assert booking.paid_at is not None
    assert booking.calendar_event_id == "evt-1"


@pytest.mark.asyncio
async def test_complete_sends_thank_you(db_session, lifecycle, make_booking, invoicing, mailer, calendar):
    booking = await make_booking(status="paid", invoice_number="E-MIS-1")

    result = await lifecycle.transition(db_session, booking.id, "completed")

    assert result.committed
    assert invoicing.calls == []
    assert mailer.templates == ["completed"]
    assert calendar.actions == ["update"]


@pytest.mark.asyncio
async def test_soft_failures_are_collected(db_session, make_booking):
    lifecycle = service(mailer=RecordingMailer(fail=True), calendar=RecordingCalendar(fail=True))
    booking = await make_booking(status="paid", invoice_number="E-MIS-1")

    result = await lifecycle.transition(db_session, booking.id, "completed")

    assert result.committed
    assert steps(result) == [("email", OUTCOME_FAILED), ("calendar", OUTCOME_FAILED)]
    assert result.errors == ["email: SMTP down", "calendar: calendar 500"]
    # calendar problems never reach the operator message
    assert summarize(result, STATUS_CHANGED) == "Státusz módosítva! | Email hiba: SMTP down"


@pytest.mark.asyncio
async def test_skipped_integrations(db_session, make_booking):
    lifecycle = BookingLifecycleService(
        invoicing=RecordingInvoiceGateway(),
        mailer=RecordingMailer(),
        calendar=DisabledCalendarSync(),
        clock=lambda: FIXED_NOW,
    )
    booking = await make_booking(status="paid", invoice_number="E-MIS-1")

    result = await lifecycle.transition(db_session, booking.id, "completed")

    assert ("calendar", OUTCOME_SKIPPED) in steps(result)
    assert result.errors == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_paid_cancellation_reverses_invoice_first(
    db_session, lifecycle, make_booking, invoicing, mailer, calendar
):
    """98 000 Ft paid booking, 2 days ahead: storno, 70% fee, 29 400 Ft refund."""
    booking = await make_booking(
        status="paid", days_ahead=2, total_price=98000,
        invoice_number="E-MIS-2026-100", calendar_event_id="evt-42",
    )

    result = await lifecycle.transition(db_session, booking.id, "cancelled", reason="Beteg lettem", actor=ADMIN)

    assert result.committed
    assert invoicing.calls == [("storno", "E-MIS-2026-100"), ("issue", f"CANCEL-{booking.id}")]
    fee_request = invoicing.issued[0]
    assert fee_request.paid is True
    assert fee_request.payment_deadline_days is None
    assert fee_request.items[0].name.startswith("Lemondási díj - Délelőtt")

    assert result.cancellation.fee == 68600
    assert result.cancellation.fee_percent == 70
    assert result.cancellation.refund_amount == 29400
    assert result.cancellation.storno_invoice_number == "S-E-MIS-2026-100"

    assert mailer.templates == ["cancelled", "cancelled_admin"]
    customer_mail = mailer.sent[0][2]
    assert customer_mail["refund_amount"] == "29 400 Ft"
    assert customer_mail["invoice_number"] == "E-MIS-2026-100"
    assert mailer.sent[1][0] == "admin@studyu.hu"
    assert calendar.actions == ["delete"]
    assert calendar.calls[0][1].event_id == "evt-42"

    await db_session.refresh(booking)
    assert booking.status == "cancelled"
    assert booking.cancellation_fee == 68600
    assert booking.cancellation_reason == "Beteg lettem"
    assert booking.storno_invoice_number == "S-E-MIS-2026-100"
    assert booking.cancellation_invoice_number == "E-MIS-100"
    assert booking.cancelled_at is not None
    assert booking.calendar_event_id is None

    assert summarize(result, STATUS_CHANGED) == (
        "Státusz módosítva! | Sztornó: S-E-MIS-2026-100 | Lemondási díj számla: E-MIS-100"
        " | Email elküldve | Admin értesítve | Naptár szinkronizálva"
    )


@pytest.mark.asyncio
async def test_storno_failure_keeps_booking_paid(db_session, make_booking):
    invoicing = RecordingInvoiceGateway(fail_reverse=True)
    mailer, calendar = RecordingMailer(), RecordingCalendar()
    lifecycle = service(invoicing=invoicing, mailer=mailer, calendar=calendar)
    booking = await make_booking(status="paid", days_ahead=2, total_price=98000, invoice_number="E-MIS-2026-100")

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.rejection.code == "storno_failed"
    assert result.rejection.message == "Sztornó hiba: Agent timeout"
    assert result.cancellation is None
    assert invoicing.calls == [("storno", "E-MIS-2026-100")]
    assert mailer.sent == [] and calendar.calls == []

    await db_session.refresh(booking)
    assert booking.status == "paid"
    assert booking.cancellation_fee is None
    assert booking.version == 1


@pytest.mark.asyncio
async def test_free_cancellation_of_unpaid_booking(db_session, make_booking):
    invoicing = RecordingInvoiceGateway(configured=False)
    mailer = RecordingMailer()
    lifecycle = service(invoicing=invoicing, mailer=mailer)
    booking = await make_booking(status="pending", days_ahead=10, total_price=50000)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.committed
    assert invoicing.calls == []
    assert result.cancellation.fee == 0
    assert result.cancellation.refund_amount == 0
    assert mailer.sent[0][2]["fee_amount"] == 0


@pytest.mark.asyncio
async def test_unpaid_cancellation_fee_invoice_is_payable_by_transfer(db_session, lifecycle, make_booking, invoicing):
    booking = await make_booking(status="confirmed", days_ahead=5, total_price=50000)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.cancellation.fee == 25000
    assert result.cancellation.refund_amount == 0
    assert result.cancellation.storno_invoice_number is None
    request = invoicing.issued[0]
    assert request.paid is False
    assert request.payment_method == "transfer"
    assert request.payment_deadline_days == 8
    assert request.order_number == f"CANCEL-{booking.id}"


@pytest.mark.asyncio
async def test_fee_invoice_failure_is_soft(db_session, make_booking):
    lifecycle = service(invoicing=RecordingInvoiceGateway(fail_issue=True))
    booking = await make_booking(status="confirmed", days_ahead=5, total_price=50000)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.committed
    assert ("cancellation_invoice", OUTCOME_FAILED) in steps(result)
    await db_session.refresh(booking)
    assert booking.status == "cancelled"
    assert booking.cancellation_fee == 25000
    assert booking.cancellation_invoice_number is None


@pytest.mark.asyncio
async def test_fee_bearing_cancel_refused_without_invoicing_config(db_session, make_booking):
    lifecycle = service(invoicing=RecordingInvoiceGateway(configured=False))
    booking = await make_booking(status="confirmed", days_ahead=5)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.rejection.code == "integration_not_configured"


@pytest.mark.asyncio
async def test_cancellation_uses_stored_policy(db_session, lifecycle, make_booking):
    store = SettingsPolicyStore()
    await store.save_policy(db_session, CancellationPolicy(rules=[{"days_before": 14, "fee_percent": 10}]))
    await db_session.commit()
    booking = await make_booking(status="confirmed", days_ahead=20, total_price=40000)

    result = await lifecycle.transition(db_session, booking.id, "cancelled")

    assert result.cancellation.fee_percent == 10
    assert result.cancellation.fee == 4000


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_locked_booking_is_refused(db_session, make_booking):
    invoicing = RecordingInvoiceGateway()
    lifecycle = service(invoicing=invoicing, lock=BusyLock())
    booking = await make_booking(status="pending")

    result = await lifecycle.transition(db_session, booking.id, "confirmed")

    assert result.rejection.code == "conflict"
    assert invoicing.calls == []


@pytest.mark.asyncio
async def test_concurrent_write_loses_version_check(db_session: AsyncSession, make_booking):
    mailer = RecordingMailer()
    invoicing = InterleavingInvoiceGateway(db_session)
    lifecycle = service(invoicing=invoicing, mailer=mailer)
    booking = await make_booking(status="pending")

    result = await lifecycle.transition(db_session, booking.id, "confirmed")

    assert result.rejection.code == "conflict"
    assert not result.committed
    assert result.new_status == "pending"
    assert steps(result) == [("proforma", OUTCOME_OK)]
    assert mailer.sent == []
    await db_session.refresh(booking)
    assert booking.status == "pending"
    assert booking.version == 2
    assert booking.proforma_number is None


@pytest.mark.asyncio
async def test_concurrent_write_during_paid_cancellation_is_a_conflict(db_session: AsyncSession, make_booking):
    mailer = RecordingMailer()
    invoicing = InterleavingInvoiceGateway(db_session, admin_notes="edited elsewhere")
    lifecycle = service(invoicing=invoicing, mailer=mailer)
    booking = await make_booking(status="paid", days_ahead=2, total_price=98000, invoice_number="E-MIS-2026-100")

    result = await lifecycle.transition(db_session, booking.id, "cancelled", actor=ADMIN)

    assert result.rejection.code == "conflict"
    assert result.cancellation is None
    assert mailer.sent == []
    await db_session.refresh(booking)
    assert booking.status == "paid"
    assert booking.cancellation_fee is None


@pytest.mark.asyncio
async def test_guards_see_the_row_as_it_is_once_locked(db_session: AsyncSession, make_booking):
    invoicing = RecordingInvoiceGateway()
    mailer = RecordingMailer()
    booking = await make_booking(status="paid", days_ahead=2, total_price=98000, invoice_number="E-MIS-2026-100")
    # The first cancel commits and releases the lock just before this one gets it
    lock = RacingLock(db_session, status="cancelled", storno_invoice_number="S-E-MIS-2026-100", cancellation_fee=68600)
    lifecycle = service(invoicing=invoicing, mailer=mailer, lock=lock)

    result = await lifecycle.transition(db_session, booking.id, "cancelled", actor=ADMIN)

    assert result.rejection.code == "not_cancellable_status"
    assert invoicing.calls == []
    assert mailer.sent == []
    await db_session.refresh(booking)
    assert booking.version == 2


@pytest.mark.asyncio
async def test_manual_action_sees_the_row_as_it_is_once_locked(db_session: AsyncSession, make_booking):
    invoicing = RecordingInvoiceGateway()
    booking = await make_booking(status="paid", invoice_number="E-MIS-2026-100")
    lifecycle = service(invoicing=invoicing, lock=RacingLock(db_session, status="cancelled"))

    result = await lifecycle.regenerate_invoice(db_session, booking.id)

    assert result.rejection.code == "action_not_allowed"
    assert invoicing.calls == []


@pytest.mark.asyncio
async def test_no_show_sees_the_row_as_it_is_once_locked(db_session: AsyncSession, make_booking):
    booking = await make_booking(status="confirmed")
    lifecycle = service(lock=RacingLock(db_session, status="cancelled"))

    result = await lifecycle.mark_no_show(db_session, booking.id)

    assert result.rejection.code == "invalid_transition"
    await db_session.refresh(booking)
    assert booking.status == "cancelled"


# ---------------------------------------------------------------------------
# Admin actions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mark_no_show(db_session, lifecycle, make_booking, mailer, calendar):
    booking = await make_booking(status="paid", invoice_number="E-MIS-1")

    result = await lifecycle.mark_no_show(db_session, booking.id)

    assert result.new_status == "no_show"
    assert mailer.sent == [] and calendar.calls == []


@pytest.mark.asyncio
async def test_no_show_only_from_confirmed_or_paid(db_session, lifecycle, make_booking):
    booking = await make_booking(status="pending")
    result = await lifecycle.mark_no_show(db_session, booking.id)
    assert result.rejection.code == "invalid_transition"


@pytest.mark.asyncio
async def test_regenerate_proforma_stores_new_number(db_session, lifecycle, make_booking):
    booking = await make_booking(status="confirmed")

    result = await lifecycle.regenerate_proforma(db_session, booking.id)

    assert steps(result) == [("proforma", OUTCOME_OK)]
    await db_session.refresh(booking)
    assert booking.proforma_number == "D-MIS-100"
    assert booking.status == "confirmed"


@pytest.mark.asyncio
async def test_regenerate_invoice_requires_paid_booking(db_session, lifecycle, make_booking):
    booking = await make_booking(status="pending")
    result = await lifecycle.regenerate_invoice(db_session, booking.id)
    assert result.rejection.code == "action_not_allowed"


@pytest.mark.asyncio
async def test_resend_proforma_without_one_is_refused(db_session, lifecycle, make_booking, mailer):
    booking = await make_booking(status="confirmed")

    result = await lifecycle.resend_email(db_session, booking.id, "proforma")

    assert result.rejection.code == "action_not_allowed"
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_resend_cancellation_email_rebuilds_amounts(db_session, lifecycle, make_booking, mailer):
    booking = await make_booking(
        status="cancelled", total_price=98000, cancellation_fee=68600,
        invoice_number="E-MIS-2026-100", storno_invoice_number="S-1",
    )

    result = await lifecycle.resend_email(db_session, booking.id, "cancelled")

    assert steps(result) == [("email", OUTCOME_OK)]
    assert mailer.sent[0][2]["refund_amount"] == "29 400 Ft"
    assert mailer.sent[0][2]["was_paid"] is True


@pytest.mark.asyncio
async def test_resync_calendar_stores_event_id(db_session, lifecycle, make_booking, calendar):
    booking = await make_booking(status="confirmed")

    result = await lifecycle.resync_calendar(db_session, booking.id, "update")

    assert steps(result) == [("calendar", OUTCOME_OK)]
    await db_session.refresh(booking)
    assert booking.calendar_event_id == f"evt-{booking.id[:8]}"


@pytest.mark.asyncio
async def test_resent_cancellation_email_matches_the_original(db_session, lifecycle, make_booking, mailer):
    booking = await make_booking(status="paid", days_ahead=2, total_price=98000, invoice_number="E-MIS-2026-100")
    await lifecycle.transition(db_session, booking.id, "cancelled", reason="Beteg lettem", actor=ADMIN)
    original = next(data for _, template, data in mailer.sent if template == "cancelled")

    result = await lifecycle.resend_email(db_session, booking.id, "cancelled")

    assert steps(result) == [("email", OUTCOME_OK)]
    assert mailer.sent[-1][2] == original
    assert original["refund_amount"] == "29 400 Ft"
    assert original["cancellation_invoice_number"] == "E-MIS-100"
    assert original["reason"] == "Beteg lettem"


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reminders_go_to_confirmed_and_paid_bookings_tomorrow(db_session, lifecycle, make_booking, mailer):
    confirmed = await make_booking(status="confirmed", days_ahead=1)
    paid = await make_booking(status="paid", days_ahead=1, invoice_number="E-MIS-1")
    await make_booking(status="pending", days_ahead=1)
    await make_booking(status="cancelled", days_ahead=1)
    await make_booking(status="confirmed", days_ahead=2)

    run = await lifecycle.send_reminders(db_session)

    assert run.for_date == FIXED_NOW.date() + timedelta(days=1)
    assert {r.booking_id for r in run.results} == {confirmed.id, paid.id}
    assert (run.sent, run.failed) == (2, 0)
    assert mailer.templates == ["reminder", "reminder"]
    _, _, data = mailer.sent[0]
    assert data["studio_address"] == "StudyU Stúdió"
    assert data["time_slot"] == "Délelőtt (09:00 - 13:00)"


@pytest.mark.asyncio
async def test_reminders_do_not_change_status(db_session, lifecycle, make_booking, calendar, invoicing):
    booking = await make_booking(status="confirmed", days_ahead=1)

    await lifecycle.send_reminders(db_session)

    await db_session.refresh(booking)
    assert booking.status == "confirmed"
    assert booking.version == 1
    assert calendar.calls == [] and invoicing.calls == []


@pytest.mark.asyncio
async def test_reminder_failures_are_counted_per_booking(db_session, make_booking):
    lifecycle = service(mailer=RecordingMailer(fail=True))
    await make_booking(status="confirmed", days_ahead=1)
    await make_booking(status="paid", days_ahead=1)

    run = await lifecycle.send_reminders(db_session)

    assert (run.sent, run.failed) == (0, 2)
    assert all(steps(r) == [("email", OUTCOME_FAILED)] for r in run.results)


@pytest.mark.asyncio
async def test_reminders_for_an_explicit_date(db_session, lifecycle, make_booking, mailer):
    booking = await make_booking(status="paid", days_ahead=5)

    run = await lifecycle.send_reminders(db_session, FIXED_NOW.date() + timedelta(days=5))

    assert [r.booking_id for r in run.results] == [booking.id]
    assert mailer.templates == ["reminder"]
