"""
Booking lifecycle orchestration.

STATE MACHINE
=============

  pending ──> confirmed ──> paid ──> completed
     │            │           │
     └────────────┴───────────┴──> cancelled

  no_show is set by an admin from confirmed/paid (mark_no_show) and has no
  side effects. completed, cancelled and no_show are terminal: requesting any
  transition out of them is rejected, not ignored.

SIDE EFFECTS
============

  -> confirmed   proforma (if none) | "confirmed" mail | "proforma" mail | calendar create
  -> paid        final invoice (if none) | "paid" mail | calendar update
  -> completed   "completed" mail | calendar update
  -> cancelled   fee | storno (paid only, MUST succeed) | fee invoice (fee > 0)
                 | customer mail | admin summary | calendar delete

  A daily job (send_reminders) mails a "reminder" to every confirmed or paid
  booking dated tomorrow; it never changes status.

Order matters: documents are issued before the status write so their numbers
are part of it, and e-mails run after it so they can reference them. The
proforma number is threaded from the issuance result into the proforma mail
rather than re-read from the database.

FAILURE POLICY
==============

  - Guard violations and missing invoicing configuration reject the request
    before anything external happens.
  - A failed storno rejects a paid cancellation; the booking stays paid and
    no fee is recorded.
  - Everything else (proforma, invoices, fee invoice, mail, calendar) is best
    effort: the failure is recorded as a side effect and the status change
    still commits. Nothing already done is rolled back; the admin re-triggers
    failed steps by hand.

PERSISTENCE
===========

  One conditional UPDATE per transition:

    UPDATE bookings SET status = :target, version = version + 1, ...
    WHERE id = :id AND version = :version AND status = :current

  rowcount == 0 means someone else wrote the row in between; the transition
  is reported as a conflict. The per-booking lock (lock_service) makes that
  rare, the version check makes it safe.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from studio_booking.core.config import Settings, get_settings
from studio_booking.core.logging import bind_booking_context, get_logger
from studio_booking.core.metrics import (
    booking_version_conflicts, cancellation_fees, record_side_effect, record_transition, transition_latency,
)
from studio_booking.core.security import CurrentUser
from studio_booking.models.booking import (
    BOOKING_STATUSES, Booking,
    STATUS_CANCELLED, STATUS_COMPLETED, STATUS_CONFIRMED, STATUS_NO_SHOW, STATUS_PAID, STATUS_PENDING,
)
from studio_booking.services.fee_calculator import FeeQuote, calculate_cancellation_fee
from studio_booking.services.formatting import format_date_hu, format_huf, net_from_gross
from studio_booking.services.interfaces.calendar import CalendarAction, CalendarEvent, CalendarResult, CalendarSync
from studio_booking.services.interfaces.invoicing import (
    InvoiceBuyer, InvoiceGateway, InvoiceLine, InvoiceRequest, InvoiceResult, ReversalResult,
)
from studio_booking.services.interfaces.mailer import (
    DeliveryResult, Mailer,
    TEMPLATE_CANCELLED, TEMPLATE_CANCELLED_ADMIN, TEMPLATE_COMPLETED,
    TEMPLATE_CONFIRMED, TEMPLATE_PAID, TEMPLATE_PROFORMA, TEMPLATE_REMINDER,
)
from studio_booking.services.lock_service import BookingLock
from studio_booking.services.policy_service import SettingsPolicyStore

logger = get_logger(__name__)

# Side effect steps
STEP_PROFORMA = "proforma"
STEP_INVOICE = "invoice"
STEP_STORNO = "storno"
STEP_CANCELLATION_INVOICE = "cancellation_invoice"
STEP_EMAIL = "email"
STEP_ADMIN_EMAIL = "admin_email"
STEP_CALENDAR = "calendar"

OUTCOME_OK = "ok"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"

# Rejection codes
REJECT_NOT_FOUND = "not_found"
REJECT_FORBIDDEN = "forbidden"
REJECT_INVALID_STATUS = "invalid_status"
REJECT_INVALID_TRANSITION = "invalid_transition"
REJECT_NOT_CANCELLABLE = "not_cancellable_status"
REJECT_BOOKING_IN_PAST = "booking_in_past"
REJECT_NOT_CONFIGURED = "integration_not_configured"
REJECT_STORNO_FAILED = "storno_failed"
REJECT_CONFLICT = "conflict"
REJECT_ACTION_NOT_ALLOWED = "action_not_allowed"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    STATUS_CONFIRMED: frozenset({STATUS_PAID, STATUS_CANCELLED}),
    STATUS_PAID: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
    STATUS_NO_SHOW: frozenset(),
}
CANCELLABLE_STATUSES = frozenset({STATUS_PENDING, STATUS_CONFIRMED, STATUS_PAID})
NO_SHOW_FROM = frozenset({STATUS_CONFIRMED, STATUS_PAID})
REMINDER_STATUSES = (STATUS_CONFIRMED, STATUS_PAID)

RESENDABLE_TEMPLATES = (TEMPLATE_CONFIRMED, TEMPLATE_PROFORMA, TEMPLATE_PAID, TEMPLATE_COMPLETED, TEMPLATE_CANCELLED)


@dataclass(frozen=True)
class SideEffect:
    step: str
    outcome: str
    detail: Optional[str] = None
    reference: Optional[str] = None  # document number, template or calendar action


@dataclass(frozen=True)
class Rejection:
    code: str
    message: str


@dataclass(frozen=True)
class CancellationOutcome:
    fee: int
    fee_percent: int
    days_until: int
    refund_amount: int
    storno_invoice_number: Optional[str] = None
    cancellation_invoice_number: Optional[str] = None
    cancellation_invoice_url: Optional[str] = None


@dataclass
class TransitionResult:
    booking_id: str
    previous_status: str
    new_status: str
    side_effects: list[SideEffect] = field(default_factory=list)
    rejection: Optional[Rejection] = None
    cancellation: Optional[CancellationOutcome] = None

    @property
    def committed(self) -> bool:
        return self.rejection is None

    @property
    def errors(self) -> list[str]:
        messages = [f"{effect.step}: {effect.detail}" for effect in self.side_effects if effect.outcome == OUTCOME_FAILED]
        if self.rejection:
            messages.append(self.rejection.message)
        return messages


@dataclass
class ReminderRun:
    for_date: date
    results: list[TransitionResult] = field(default_factory=list)

    def _count(self, outcome: str) -> int:
        return sum(1 for r in self.results for e in r.side_effects if e.outcome == outcome)

    @property
    def sent(self) -> int:
        return self._count(OUTCOME_OK)

    @property
    def failed(self) -> int:
        return self._count(OUTCOME_FAILED)


def check_transition(current: str, target: str, booking_date: date, today: date) -> Optional[Rejection]:
    """Guards evaluated before any side effect. Returns None when the transition may proceed."""
    if target not in BOOKING_STATUSES:
        return Rejection(REJECT_INVALID_STATUS, f"Ismeretlen státusz: {target}")

    if target == STATUS_CANCELLED:
        if current not in CANCELLABLE_STATUSES:
            return Rejection(REJECT_NOT_CANCELLABLE, "Ez a foglalás nem mondható le")
        if booking_date <= today:
            return Rejection(REJECT_BOOKING_IN_PAST, "Múltbeli foglalás nem mondható le")
        return None

    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        if not ALLOWED_TRANSITIONS.get(current):
            return Rejection(REJECT_INVALID_TRANSITION, f"A foglalás lezárt állapotú ({current}), nem módosítható")
        return Rejection(REJECT_INVALID_TRANSITION, f"Nem engedélyezett státuszváltás: {current} -> {target}")
    return None


class BookingLifecycleService:

    def __init__(
        self,
        invoicing: InvoiceGateway,
        mailer: Mailer,
        calendar: CalendarSync,
        policy_store: Optional[SettingsPolicyStore] = None,
        lock: Optional[BookingLock] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.invoicing = invoicing
        self.mailer = mailer
        self.calendar = calendar
        self.policy_store = policy_store or SettingsPolicyStore()
        self.lock = lock or BookingLock()
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(ZoneInfo(self.settings.STUDIO_TIMEZONE)))

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.now().date()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def load_booking(self, db: AsyncSession, booking_id: str) -> Optional[Booking]:
        """Always reads the current row, overwriting any copy cached in the session."""
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def quote_cancellation(self, db: AsyncSession, booking: Booking) -> FeeQuote:
        policy = await self.policy_store.load(db)
        return calculate_cancellation_fee(booking.booking_date, booking.total_price, policy.rules, today=self.today())

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def transition(
        self,
        db: AsyncSession,
        booking_id: str,
        target_status: str,
        reason: Optional[str] = None,
        actor: Optional[CurrentUser] = None,
    ) -> TransitionResult:
        """
        Move a booking to `target_status` and run the side effects that
        transition requires. Never raises for business outcomes: rejections
        and failed steps are part of the returned result.
        """
        started = time.perf_counter()
        bind_booking_context(booking_id, target_status=target_status)

        booking = await self.load_booking(db, booking_id)
        if booking is None or (actor is not None and not actor.is_admin and booking.user_id != actor.id):
            return self._rejected(booking_id, "", target_status, Rejection(REJECT_NOT_FOUND, "Foglalás nem található"))

        if actor is not None and not actor.is_admin and target_status != STATUS_CANCELLED:
            return self._rejected(booking_id, booking.status, target_status, Rejection(REJECT_FORBIDDEN, "Forbidden"))

        async with self.lock.hold(booking_id) as held:
            if not held:
                return self._rejected(
                    booking_id, booking.status, target_status,
                    Rejection(REJECT_CONFLICT, "A foglalás módosítása folyamatban van, próbálja újra később"),
                )

            # Guards run against the row as it is once the lock is ours
            booking = await self.load_booking(db, booking_id)
            if booking is None:
                return self._rejected(booking_id, "", target_status, Rejection(REJECT_NOT_FOUND, "Foglalás nem található"))
            current = booking.status

            rejection = check_transition(current, target_status, booking.booking_date, self.today())
            if rejection:
                return self._rejected(booking_id, current, target_status, rejection)

            quote = None
            if target_status == STATUS_CANCELLED:
                quote = await self.quote_cancellation(db, booking)

            if self._needs_invoicing(booking, target_status, quote) and not self.invoicing.configured:
                return self._rejected(
                    booking_id, current, target_status,
                    Rejection(REJECT_NOT_CONFIGURED, "Számlázás nincs beállítva, a státusz nem módosítható"),
                )

            logger.info("booking_transition_started", previous_status=current)
            result = TransitionResult(booking_id=booking_id, previous_status=current, new_status=current)

            if target_status == STATUS_CONFIRMED:
                await self._confirm(db, booking, result)
            elif target_status == STATUS_PAID:
                await self._mark_paid(db, booking, result)
            elif target_status == STATUS_COMPLETED:
                await self._complete(db, booking, result)
            else:
                await self._cancel(db, booking, result, quote, reason)

        record_transition(target_status, committed=result.committed)
        transition_latency.observe(time.perf_counter() - started)
        logger.info(
            "booking_transition_finished",
            previous_status=current,
            new_status=result.new_status,
            committed=result.committed,
            failed_steps=[e.step for e in result.side_effects if e.outcome == OUTCOME_FAILED],
        )
        return result

    async def mark_no_show(self, db: AsyncSession, booking_id: str) -> TransitionResult:
        """Admin marking: direct status write, no side effects."""
        async with self.lock.hold(booking_id) as held:
            if not held:
                return self._rejected(
                    booking_id, "", STATUS_NO_SHOW,
                    Rejection(REJECT_CONFLICT, "A foglalás módosítása folyamatban van, próbálja újra később"),
                )
            booking = await self.load_booking(db, booking_id)
            if booking is None:
                return self._rejected(booking_id, "", STATUS_NO_SHOW, Rejection(REJECT_NOT_FOUND, "Foglalás nem található"))
            if booking.status not in NO_SHOW_FROM:
                return self._rejected(
                    booking_id, booking.status, STATUS_NO_SHOW,
                    Rejection(REJECT_INVALID_TRANSITION, f"Nem engedélyezett státuszváltás: {booking.status} -> {STATUS_NO_SHOW}"),
                )

            result = TransitionResult(booking_id=booking_id, previous_status=booking.status, new_status=booking.status)
            await self._commit_status(db, booking, STATUS_NO_SHOW, {}, result)
        record_transition(STATUS_NO_SHOW, committed=result.committed)
        return result

    async def _confirm(self, db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
        changes: dict[str, Any] = {}
        proforma_number = booking.proforma_number
        proforma_url = booking.proforma_url

        if not proforma_number:
            issued = await self._issue(result, STEP_PROFORMA, self._proforma_request(booking))
            if issued.success:
                proforma_number, proforma_url = issued.invoice_number, issued.invoice_url
                changes.update(proforma_number=proforma_number, proforma_url=proforma_url, proforma_sent_at=self.now())

        if not await self._commit_status(db, booking, STATUS_CONFIRMED, changes, result):
            return

        await self._mail_customer(result, booking, TEMPLATE_CONFIRMED)
        if proforma_number:
            await self._mail_customer(
                result, booking, TEMPLATE_PROFORMA,
                proforma_number=proforma_number, proforma_url=proforma_url or "",
            )
        await self._sync_calendar(db, result, booking, "create")

    async def _mark_paid(self, db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
        changes: dict[str, Any] = {"paid_at": self.now()}
        invoice_url = booking.invoice_url

        if not booking.invoice_number:
            issued = await self._issue(result, STEP_INVOICE, self._final_invoice_request(booking))
            if issued.success:
                invoice_url = issued.invoice_url
                changes.update(invoice_number=issued.invoice_number, invoice_url=issued.invoice_url)

        if not await self._commit_status(db, booking, STATUS_PAID, changes, result):
            return

        await self._mail_customer(result, booking, TEMPLATE_PAID, invoice_url=invoice_url or "")
        await self._sync_calendar(db, result, booking, "update")

    async def _complete(self, db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
        if not await self._commit_status(db, booking, STATUS_COMPLETED, {}, result):
            return

        await self._mail_customer(result, booking, TEMPLATE_COMPLETED)
        await self._sync_calendar(db, result, booking, "update")

    async def _cancel(
        self,
        db: AsyncSession,
        booking: Booking,
        result: TransitionResult,
        quote: FeeQuote,
        reason: Optional[str],
    ) -> None:
        was_paid = booking.is_paid
        original_invoice = booking.invoice_number
        refund_amount = quote.refund_for(booking.total_price) if was_paid else 0
        changes: dict[str, Any] = {}

        storno_number = None
        if was_paid:
            reversal = await self._reverse(result, original_invoice)
            if not reversal.success:
                # Cannot cancel a paid booking while its invoice stands
                logger.error("storno_failed", invoice_number=original_invoice, error=reversal.error)
                result.rejection = Rejection(REJECT_STORNO_FAILED, f"Sztornó hiba: {reversal.error}")
                return
            storno_number = reversal.reversal_number
            changes["storno_invoice_number"] = storno_number

        fee_invoice = InvoiceResult(success=False)
        if quote.fee > 0:
            fee_invoice = await self._issue(
                result, STEP_CANCELLATION_INVOICE, self._cancellation_invoice_request(booking, quote.fee, was_paid),
            )
            if fee_invoice.success:
                changes.update(
                    cancellation_invoice_number=fee_invoice.invoice_number,
                    cancellation_invoice_url=fee_invoice.invoice_url,
                )

        changes.update(
            cancelled_at=self.now(),
            cancellation_fee=quote.fee,
            cancellation_reason=reason or None,
        )
        if not await self._commit_status(db, booking, STATUS_CANCELLED, changes, result):
            return

        outcome = CancellationOutcome(
            fee=quote.fee,
            fee_percent=quote.fee_percent,
            days_until=quote.days_until,
            refund_amount=refund_amount,
            storno_invoice_number=storno_number,
            cancellation_invoice_number=fee_invoice.invoice_number,
            cancellation_invoice_url=fee_invoice.invoice_url,
        )
        result.cancellation = outcome
        cancellation_fees.observe(quote.fee_percent)
        logger.info(
            "booking_cancelled",
            fee=quote.fee,
            fee_percent=quote.fee_percent,
            days_until=quote.days_until,
            refund_amount=refund_amount,
            was_paid=was_paid,
        )

        data = self._cancellation_mail_data(booking, was_paid, refund_amount)
        await self._mail_customer(result, booking, TEMPLATE_CANCELLED, **data)
        if self.settings.ADMIN_EMAIL:
            await self._send(
                result, STEP_ADMIN_EMAIL, self.settings.ADMIN_EMAIL, TEMPLATE_CANCELLED_ADMIN,
                self._mail_data(booking, **data),
            )
        await self._sync_calendar(db, result, booking, "delete")

    # -------------------------------------------------------------------------
    # Manual re-triggers (admin)
    # -------------------------------------------------------------------------

    async def regenerate_proforma(self, db: AsyncSession, booking_id: str) -> TransitionResult:
        return await self._run_action(
            db, booking_id, {STATUS_PENDING, STATUS_CONFIRMED}, self._regenerate_proforma,
            needs_invoicing=True, not_allowed="Díjbekérő csak függő vagy visszaigazolt foglaláshoz készíthető",
        )

    async def regenerate_invoice(self, db: AsyncSession, booking_id: str) -> TransitionResult:
        return await self._run_action(
            db, booking_id, {STATUS_PAID, STATUS_COMPLETED}, self._regenerate_invoice,
            needs_invoicing=True, not_allowed="Számla csak fizetett foglaláshoz készíthető",
        )

    async def resend_email(self, db: AsyncSession, booking_id: str, template: str) -> TransitionResult:
        if template not in RESENDABLE_TEMPLATES:
            return self._rejected(booking_id, "", "", Rejection(REJECT_ACTION_NOT_ALLOWED, f"Ismeretlen email típus: {template}"))

        async def send(db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
            if template == TEMPLATE_PROFORMA:
                if not booking.proforma_number:
                    result.rejection = Rejection(REJECT_ACTION_NOT_ALLOWED, "A foglaláshoz nem tartozik díjbekérő")
                    return
                await self._mail_customer(result, booking, TEMPLATE_PROFORMA)
            elif template == TEMPLATE_CANCELLED:
                if booking.status != STATUS_CANCELLED:
                    result.rejection = Rejection(REJECT_ACTION_NOT_ALLOWED, "A foglalás nincs lemondva")
                    return
                # A reversed invoice means the booking had been paid
                was_paid = bool(booking.storno_invoice_number)
                refund_amount = booking.total_price - (booking.cancellation_fee or 0) if was_paid else 0
                data = self._cancellation_mail_data(booking, was_paid, refund_amount)
                await self._mail_customer(result, booking, TEMPLATE_CANCELLED, **data)
            else:
                await self._mail_customer(result, booking, template)

        return await self._run_action(db, booking_id, set(BOOKING_STATUSES), send)

    async def resync_calendar(self, db: AsyncSession, booking_id: str, action: CalendarAction) -> TransitionResult:
        async def sync(db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
            await self._sync_calendar(db, result, booking, action)

        return await self._run_action(db, booking_id, set(BOOKING_STATUSES), sync)

    # -------------------------------------------------------------------------
    # Scheduled jobs
    # -------------------------------------------------------------------------

    async def send_reminders(self, db: AsyncSession, for_date: Optional[date] = None) -> ReminderRun:
        """
        E-mail every confirmed or paid booking on `for_date` (default: tomorrow
        in studio time). One result per booking; a failed send does not stop
        the rest.
        """
        for_date = for_date or self.today() + timedelta(days=1)
        rows = await db.execute(
            select(Booking)
            .where(Booking.booking_date == for_date, Booking.status.in_(REMINDER_STATUSES))
            .order_by(Booking.start_time, Booking.id)
        )

        run = ReminderRun(for_date=for_date)
        for booking in rows.scalars().all():
            result = TransitionResult(booking_id=booking.id, previous_status=booking.status, new_status=booking.status)
            await self._mail_customer(result, booking, TEMPLATE_REMINDER, studio_address=self.settings.STUDIO_ADDRESS)
            run.results.append(result)

        logger.info("reminders_sent", for_date=for_date.isoformat(), sent=run.sent, failed=run.failed)
        return run

    async def _regenerate_proforma(self, db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
        issued = await self._issue(result, STEP_PROFORMA, self._proforma_request(booking))
        if issued.success:
            await self._store_fields(
                db, booking,
                proforma_number=issued.invoice_number, proforma_url=issued.invoice_url, proforma_sent_at=self.now(),
            )

    async def _regenerate_invoice(self, db: AsyncSession, booking: Booking, result: TransitionResult) -> None:
        issued = await self._issue(result, STEP_INVOICE, self._final_invoice_request(booking))
        if issued.success:
            await self._store_fields(db, booking, invoice_number=issued.invoice_number, invoice_url=issued.invoice_url)

    async def _run_action(
        self,
        db: AsyncSession,
        booking_id: str,
        allowed_statuses: set[str],
        action: Callable,
        needs_invoicing: bool = False,
        not_allowed: str = "A művelet ebben az állapotban nem engedélyezett",
    ) -> TransitionResult:
        bind_booking_context(booking_id)
        async with self.lock.hold(booking_id) as held:
            if not held:
                return self._rejected(
                    booking_id, "", "",
                    Rejection(REJECT_CONFLICT, "A foglalás módosítása folyamatban van, próbálja újra később"),
                )
            booking = await self.load_booking(db, booking_id)
            if booking is None:
                return self._rejected(booking_id, "", "", Rejection(REJECT_NOT_FOUND, "Foglalás nem található"))
            if booking.status not in allowed_statuses:
                return self._rejected(booking_id, booking.status, "", Rejection(REJECT_ACTION_NOT_ALLOWED, not_allowed))
            if needs_invoicing and not self.invoicing.configured:
                return self._rejected(
                    booking_id, booking.status, "",
                    Rejection(REJECT_NOT_CONFIGURED, "Számlázás nincs beállítva"),
                )

            result = TransitionResult(booking_id=booking_id, previous_status=booking.status, new_status=booking.status)
            await action(db, booking, result)
        return result

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _commit_status(
        self,
        db: AsyncSession,
        booking: Booking,
        target: str,
        changes: dict[str, Any],
        result: TransitionResult,
    ) -> bool:
        """The single conditional write of a transition. Commits immediately."""
        expected_version = booking.version
        new_version = expected_version + 1
        outcome = await db.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.version == expected_version,
                Booking.status == booking.status,
            )
            .values(status=target, version=new_version, **changes)
            .execution_options(synchronize_session=False)
        )

        if outcome.rowcount == 0:
            # Rollback expires the instance; no attribute access past this point
            await db.rollback()
            booking_version_conflicts.inc()
            logger.warning("booking_version_conflict", expected_version=expected_version, target_status=target)
            result.rejection = Rejection(REJECT_CONFLICT, "A foglalást közben módosították, töltse be újra")
            return False

        await db.commit()
        for key, value in {**changes, "status": target, "version": new_version}.items():
            set_committed_value(booking, key, value)

        result.new_status = target
        logger.info("booking_transition_committed", previous_status=result.previous_status, new_status=target)
        return True

    async def _store_fields(self, db: AsyncSession, booking: Booking, **values: Any) -> None:
        """Column-only write for data produced after the status write (documents, calendar id)."""
        await db.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        for key, value in values.items():
            set_committed_value(booking, key, value)

    # -------------------------------------------------------------------------
    # Side effect steps
    # -------------------------------------------------------------------------

    def _record(self, result: TransitionResult, effect: SideEffect) -> None:
        result.side_effects.append(effect)
        record_side_effect(effect.step, effect.outcome)
        if effect.outcome == OUTCOME_FAILED:
            logger.warning("side_effect_failed", step=effect.step, error=effect.detail)
        else:
            logger.info("side_effect_done", step=effect.step, outcome=effect.outcome, reference=effect.reference)

    def _needs_invoicing(self, booking: Booking, target: str, quote: Optional[FeeQuote]) -> bool:
        if target == STATUS_CONFIRMED:
            return not booking.proforma_number
        if target == STATUS_PAID:
            return not booking.invoice_number
        if target == STATUS_CANCELLED:
            return booking.is_paid or (quote is not None and quote.fee > 0)
        return False

    async def _issue(self, result: TransitionResult, step: str, request: InvoiceRequest) -> InvoiceResult:
        try:
            issued = await self.invoicing.issue_invoice(request)
        except Exception as e:
            logger.exception("invoice_gateway_error", step=step)
            issued = InvoiceResult(success=False, error=str(e))

        if issued.success:
            self._record(result, SideEffect(step, OUTCOME_OK, reference=issued.invoice_number))
        else:
            self._record(result, SideEffect(step, OUTCOME_FAILED, detail=issued.error or "ismeretlen hiba"))
        return issued

    async def _reverse(self, result: TransitionResult, invoice_number: str) -> ReversalResult:
        try:
            reversal = await self.invoicing.reverse_invoice(invoice_number)
        except Exception as e:
            logger.exception("invoice_gateway_error", step=STEP_STORNO)
            reversal = ReversalResult(success=False, error=str(e))

        if reversal.success:
            self._record(result, SideEffect(STEP_STORNO, OUTCOME_OK, reference=reversal.reversal_number))
        else:
            self._record(result, SideEffect(STEP_STORNO, OUTCOME_FAILED, detail=reversal.error or "ismeretlen hiba"))
        return reversal

    async def _send(self, result: TransitionResult, step: str, to: str, template: str, data: dict[str, Any]) -> None:
        if not to:
            self._record(result, SideEffect(step, OUTCOME_FAILED, detail="Nincs e-mail cím", reference=template))
            return
        try:
            delivery = await self.mailer.send_email(to, template, data)
        except Exception as e:
            logger.exception("mailer_error", template=template)
            delivery = DeliveryResult(success=False, error=str(e))

        if delivery.skipped:
            self._record(result, SideEffect(step, OUTCOME_SKIPPED, reference=template))
        elif delivery.success:
            self._record(result, SideEffect(step, OUTCOME_OK, reference=template))
        else:
            self._record(result, SideEffect(step, OUTCOME_FAILED, detail=delivery.error, reference=template))

    async def _mail_customer(self, result: TransitionResult, booking: Booking, template: str, **extra: Any) -> None:
        to = booking.profile.email if booking.profile else ""
        await self._send(result, STEP_EMAIL, to, template, self._mail_data(booking, **extra))

    async def _sync_calendar(self, db: AsyncSession, result: TransitionResult, booking: Booking, action: CalendarAction) -> None:
        try:
            synced = await self.calendar.sync(self._calendar_event(booking), action)
        except Exception as e:
            logger.exception("calendar_error", action=action)
            synced = CalendarResult(success=False, error=str(e))

        if synced.skipped:
            self._record(result, SideEffect(STEP_CALENDAR, OUTCOME_SKIPPED, reference=action))
            return
        if not synced.success:
            self._record(result, SideEffect(STEP_CALENDAR, OUTCOME_FAILED, detail=synced.error, reference=action))
            return

        self._record(result, SideEffect(STEP_CALENDAR, OUTCOME_OK, reference=action))
        event_id = None if action == "delete" else synced.event_id
        if event_id != booking.calendar_event_id:
            await self._store_fields(db, booking, calendar_event_id=event_id)

    # -------------------------------------------------------------------------
    # Payload builders
    # -------------------------------------------------------------------------

    def _buyer(self, booking: Booking) -> InvoiceBuyer:
        profile = booking.profile
        if profile is None:
            return InvoiceBuyer(name="Vevő")
        return InvoiceBuyer(
            name=profile.buyer_name,
            zip=profile.billing_zip or "0000",
            city=profile.billing_city or "Budapest",
            address=profile.billing_street or "-",
            email=profile.email,
            phone=profile.phone,
            tax_number=profile.tax_number,
        )

    def _rental_lines(self, booking: Booking) -> list[InvoiceLine]:
        vat = self.settings.VAT_RATE
        slot = booking.time_slot_label or "Stúdió bérlés"
        lines = [
            InvoiceLine(
                name=f"Stúdió bérlés - {slot} ({format_date_hu(booking.booking_date)})",
                quantity=1,
                unit_price_net=net_from_gross(booking.base_price, vat),
                vat_rate=vat,
            )
        ]
        for extra in booking.extras:
            lines.append(InvoiceLine(
                name=extra.name or "Kiegészítő szolgáltatás",
                quantity=extra.quantity,
                unit_price_net=net_from_gross(extra.unit_price, vat),
                vat_rate=vat,
            ))
        if booking.discount_amount:
            lines.append(InvoiceLine(
                name="Kedvezmény",
                quantity=1,
                unit_price_net=-net_from_gross(booking.discount_amount, vat),
                vat_rate=vat,
            ))
        return lines

    def _proforma_request(self, booking: Booking) -> InvoiceRequest:
        return InvoiceRequest(
            buyer=self._buyer(booking),
            items=self._rental_lines(booking),
            order_number=booking.id,
            comment=f"Foglalás azonosító: {booking.id}",
            payment_deadline_days=self.settings.PAYMENT_DEADLINE_DAYS,
            currency=self.settings.CURRENCY,
            proforma=True,
        )

    def _final_invoice_request(self, booking: Booking) -> InvoiceRequest:
        return InvoiceRequest(
            buyer=self._buyer(booking),
            items=self._rental_lines(booking),
            order_number=booking.id,
            comment=f"Foglalás azonosító: {booking.id}",
            currency=self.settings.CURRENCY,
            proforma_number=booking.proforma_number,
            paid=True,
        )

    def _cancellation_invoice_request(self, booking: Booking, fee: int, was_paid: bool) -> InvoiceRequest:
        vat = self.settings.VAT_RATE
        slot = booking.time_slot_name or booking.time_slot_label or "Stúdió bérlés"
        # A paid booking's fee is withheld from the refund, so it is already settled
        settled = was_paid and self.settings.CANCELLATION_FEE_INVOICE_PAID_WHEN_REFUNDED
        return InvoiceRequest(
            buyer=self._buyer(booking),
            items=[InvoiceLine(
                name=f"Lemondási díj - {slot} ({format_date_hu(booking.booking_date)})",
                quantity=1,
                unit_price_net=net_from_gross(fee, vat),
                vat_rate=vat,
            )],
            order_number=f"CANCEL-{booking.id}",
            comment=f"Lemondási díj - Foglalás: {booking.id}",
            payment_deadline_days=None if settled else self.settings.PAYMENT_DEADLINE_DAYS,
            currency=self.settings.CURRENCY,
            paid=settled,
        )

    def _mail_data(self, booking: Booking, **extra: Any) -> dict[str, Any]:
        profile = booking.profile
        data = {
            "booking_id": booking.id,
            "customer_name": (profile.full_name if profile else None) or "Ügyfelünk",
            "customer_email": profile.email if profile else "",
            "booking_date": format_date_hu(booking.booking_date, with_weekday=True),
            "time_slot": booking.time_slot_label,
            "total_price": format_huf(booking.total_price),
            "studio_name": self.settings.STUDIO_NAME,
            "site_url": self.settings.SITE_URL,
            "proforma_number": booking.proforma_number or "",
            "proforma_url": booking.proforma_url or "",
            "invoice_number": booking.invoice_number or "",
            "invoice_url": booking.invoice_url or "",
        }
        data.update(extra)
        return data

    def _cancellation_mail_data(self, booking: Booking, was_paid: bool, refund_amount: int) -> dict[str, Any]:
        """Built from the stored cancellation columns, so a resend matches the original mail."""
        fee = booking.cancellation_fee or 0
        return {
            "was_paid": was_paid,
            "invoice_number": booking.invoice_number or "",
            "fee_amount": fee,
            "cancellation_fee": format_huf(fee),
            "refund_amount": format_huf(refund_amount),
            "storno_invoice_number": booking.storno_invoice_number or "",
            "cancellation_invoice_number": booking.cancellation_invoice_number or "",
            "cancellation_invoice_url": booking.cancellation_invoice_url or "",
            "reason": booking.cancellation_reason or "",
        }

    def _calendar_event(self, booking: Booking) -> CalendarEvent:
        profile = booking.profile
        return CalendarEvent(
            booking_id=booking.id,
            client_name=(profile.full_name if profile else None) or "Ismeretlen",
            booking_date=booking.booking_date.isoformat(),
            start_time=booking.start_time or "",
            end_time=booking.end_time or "",
            status=booking.status,
            total_price=booking.total_price,
            event_id=booking.calendar_event_id,
            time_slot_name=booking.time_slot_name,
            user_notes=booking.user_notes,
            admin_notes=booking.admin_notes,
        )

    def _rejected(self, booking_id: str, current: str, target: str, rejection: Rejection) -> TransitionResult:
        logger.info("booking_transition_rejected", code=rejection.code, current_status=current, target_status=target)
        if target:
            record_transition(target, committed=False)
        return TransitionResult(
            booking_id=booking_id,
            previous_status=current,
            new_status=current,
            rejection=rejection,
        )
