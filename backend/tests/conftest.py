"""
Pytest fixtures for test database, client, collaborators and authentication.

Runs against an in-memory SQLite database (aiosqlite) with Redis disabled, so
the policy cache is bypassed and the booking lock fails open. Invoicing,
e-mail and calendar are replaced by recording fakes; the clock is fixed.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["ADMIN_EMAIL"] = "admin@studyu.hu"
os.environ["CRON_SECRET"] = "cron-test-secret"

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from studio_booking.main import app
from studio_booking.db.base import Base
from studio_booking.db.session import get_db
from studio_booking.core.security import ROLE_ADMIN, ROLE_CUSTOMER, create_access_token
from studio_booking.models import Booking, Profile
from studio_booking.services.email_templates import render
from studio_booking.services.integration_factory import get_lifecycle_service
from studio_booking.services.interfaces import (
    CalendarEvent, CalendarResult, CalendarSync, DeliveryResult, InvoiceGateway,
    InvoiceRequest, InvoiceResult, Mailer, ReversalResult,
)
from studio_booking.services.lifecycle_service import BookingLifecycleService
from studio_booking.services.lock_service import BookingLock
from studio_booking.services.policy_service import SettingsPolicyStore

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Tuesday morning, studio time
FIXED_NOW = datetime(2026, 3, 10, 10, 0, tzinfo=ZoneInfo("Europe/Budapest"))
TODAY = FIXED_NOW.date()


class RecordingInvoiceGateway(InvoiceGateway):
    """Numbers documents like the real provider: D- proformas, E- invoices."""

    def __init__(self, configured: bool = True, fail_issue: bool = False, fail_reverse: bool = False):
        self._configured = configured
        self.fail_issue = fail_issue
        self.fail_reverse = fail_reverse
        self.issued: list[InvoiceRequest] = []
        self.reversed: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self._sequence = 100

    @property
    def configured(self) -> bool:
        return self._configured

    async def issue_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        self.issued.append(request)
        self.calls.append(("issue", request.order_number))
        if self.fail_issue:
            return InvoiceResult(success=False, error="Agent timeout")
        prefix = "D-MIS" if request.proforma else "E-MIS"
        number = f"{prefix}-{self._sequence}"
        self._sequence += 1
        return InvoiceResult(success=True, invoice_number=number, invoice_url=f"https://invoices.test/{number}.pdf")

    async def reverse_invoice(self, invoice_number: str) -> ReversalResult:
        self.reversed.append(invoice_number)
        self.calls.append(("storno", invoice_number))
        if self.fail_reverse:
            return ReversalResult(success=False, error="Agent timeout")
        return ReversalResult(success=True, reversal_number=f"S-{invoice_number}")


class RecordingMailer(Mailer):
    """Renders every message so missing template data fails the test."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, dict]] = []

    @property
    def templates(self) -> list[str]:
        return [template for _, template, _ in self.sent]

    async def send_email(self, to: str, template: str, data: dict) -> DeliveryResult:
        render(template, data)
        self.sent.append((to, template, data))
        if self.fail:
            return DeliveryResult(success=False, error="SMTP down")
        return DeliveryResult(success=True)


class RecordingCalendar(CalendarSync):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, CalendarEvent]] = []

    @property
    def actions(self) -> list[str]:
        return [action for action, _ in self.calls]

    async def sync(self, event: CalendarEvent, action: str) -> CalendarResult:
        self.calls.append((action, event))
        if self.fail:
            return CalendarResult(success=False, error="calendar 500")
        if action == "delete":
            return CalendarResult(success=True)
        return CalendarResult(success=True, event_id=event.event_id or f"evt-{event.booking_id[:8]}")


class BusyLock(BookingLock):
    """Another transition already holds every booking."""

    @asynccontextmanager
    async def hold(self, booking_id: str):
        yield False


class InterleavingInvoiceGateway(RecordingInvoiceGateway):
    """Another writer commits to the booking while a document is being issued."""

    def __init__(self, db: AsyncSession, **values):
        super().__init__()
        self.db = db
        self.values = values

    async def issue_invoice(self, request):
        booking_id = request.order_number.removeprefix("CANCEL-")
        await bump(self.db, booking_id, **self.values)
        return await super().issue_invoice(request)


class RacingLock(BookingLock):
    """Acquired only after another request has finished with the booking."""

    def __init__(self, db: AsyncSession, **values):
        super().__init__()
        self.db = db
        self.values = values

    @asynccontextmanager
    async def hold(self, booking_id: str):
        await bump(self.db, booking_id, **self.values)
        yield True


async def bump(db: AsyncSession, booking_id: str, **values) -> None:
    """Write behind the session's back: the identity map keeps the old copy."""
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(version=Booking.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory schema per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def invoicing() -> RecordingInvoiceGateway:
    return RecordingInvoiceGateway()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def calendar() -> RecordingCalendar:
    return RecordingCalendar()


@pytest.fixture
def lifecycle(invoicing, mailer, calendar) -> BookingLifecycleService:
    return BookingLifecycleService(
        invoicing=invoicing,
        mailer=mailer,
        calendar=calendar,
        policy_store=SettingsPolicyStore(),
        lock=BookingLock(),
        clock=lambda: FIXED_NOW,
    )


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, lifecycle: BookingLifecycleService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test session and the recording collaborators."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_profile(db_session: AsyncSession, **fields) -> Profile:
    profile = Profile(**fields)
    db_session.add(profile)
    await db_session.commit()
    await db_session.refresh(profile)
    return profile


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> Profile:
    return await _add_profile(
        db_session,
        id="cust-0001",
        email="anna@example.com",
        full_name="Kiss Anna",
        phone="+36301234567",
        billing_zip="1051",
        billing_city="Budapest",
        billing_street="Nádor utca 1.",
        role=ROLE_CUSTOMER,
    )


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession) -> Profile:
    return await _add_profile(
        db_session, id="cust-0002", email="bela@example.com", full_name="Nagy Béla", role=ROLE_CUSTOMER,
    )


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Profile:
    return await _add_profile(
        db_session, id="admin-0001", email="admin@studyu.hu", full_name="Studio Admin", role=ROLE_ADMIN,
    )


@pytest.fixture
def auth_headers(customer: Profile) -> dict:
    token = create_access_token(data={"sub": customer.id, "role": ROLE_CUSTOMER})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(other_customer: Profile) -> dict:
    token = create_access_token(data={"sub": other_customer.id, "role": ROLE_CUSTOMER})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin: Profile) -> dict:
    token = create_access_token(data={"sub": admin.id, "role": ROLE_ADMIN})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def make_booking(db_session: AsyncSession, customer: Profile):
    """Factory: a booking `days_ahead` days after the fixed test date."""

    async def _make(status: str = "pending", days_ahead: int = 10, total_price: int = 50000, **fields) -> Booking:
        booking = Booking(
            user_id=fields.pop("user_id", customer.id),
            booking_date=TODAY + timedelta(days=days_ahead),
            time_slot_name="Délelőtt",
            start_time="09:00",
            end_time="13:00",
            base_price=total_price,
            total_price=total_price,
            status=status,
            **fields,
        )
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return _make
