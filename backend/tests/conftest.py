# backend/tests/conftest.py
"""
Pytest configuration for the booking core.

Every test gets its own in-memory SQLite database, in-memory payment and
video gateways, and a pinned clock. Resend is patched globally so no test
can send a real email.
"""

import os
import sys

# CRITICAL: Set testing configuration BEFORE any app imports!
os.environ["SITE_MODE"] = "local"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-verification-codes"
os.environ["HUNDREDMS_WEBHOOK_SECRET"] = "test-hundredms-webhook-secret"
os.environ["STRIPE_FAKE"] = "true"
os.environ["HUNDREDMS_FAKE"] = "true"
os.environ.pop("RESEND_API_KEY", None)

# CRITICAL: Mock Resend API globally to prevent real emails in ANY test
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from unittest.mock import Mock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies.database import get_db
from app.api.dependencies.services import (
    get_clock,
    get_notification_service,
    get_payment_gateway,
    get_video_platform,
)
from app.auth import create_access_token
from app.database import Base
from app.integrations.hundredms_client import FakeHundredMsClient
from app.integrations.stripe_client import FakeStripeClient
from app.models import Booking, PaymentStatus, Slot, Student, TeacherProfile, User, UserRole
from app.services.booking_service import BookingService
from app.services.notification_service import NotificationService

NOW = datetime(2030, 3, 4, 15, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **delta: float) -> None:
        self.current = self.current + timedelta(**delta)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def fake_video() -> FakeHundredMsClient:
    return FakeHundredMsClient()


@pytest.fixture
def notifications() -> Mock:
    notifier = Mock(spec=NotificationService)
    notifier.send_booking_confirmed.return_value = True
    notifier.send_cancellation_notice.return_value = True
    notifier.send_strike_warning.return_value = True
    return notifier


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.PARENT, full_name: str = "") -> User:
        counter["n"] += 1
        user = User(
            email=f"{role.value}{counter['n']}@example.com",
            full_name=full_name or f"{role.value.title()} {counter['n']}",
            role=role.value,
            is_active=True,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_teacher(db: Session, make_user) -> Callable[..., TeacherProfile]:
    def _make(hourly_rate_cents: int = 4000, onboarded: bool = True) -> TeacherProfile:
        user = make_user(UserRole.TEACHER)
        teacher = TeacherProfile(
            user_id=user.id,
            hourly_rate_cents=hourly_rate_cents,
            stripe_account_id=f"acct_test_{user.id[-6:].lower()}" if onboarded else None,
            stripe_onboarded=onboarded,
        )
        db.add(teacher)
        db.commit()
        return teacher

    return _make


@pytest.fixture
def make_student(db: Session, make_user) -> Callable[..., Student]:
    def _make(parent: Optional[User] = None, name: str = "Mia") -> Student:
        parent = parent or make_user(UserRole.PARENT)
        student = Student(parent_id=parent.id, name=name)
        db.add(student)
        db.commit()
        return student

    return _make


@pytest.fixture
def make_slot(db: Session, clock: FixedClock) -> Callable[..., Slot]:
    def _make(
        teacher: TeacherProfile,
        starts_in: timedelta = timedelta(days=3),
        minutes: int = 60,
        is_booked: bool = False,
    ) -> Slot:
        start_at = clock() + starts_in
        slot = Slot(
            teacher_id=teacher.id,
            start_at=start_at,
            end_at=start_at + timedelta(minutes=minutes),
            is_booked=is_booked,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user(UserRole.ADMIN)


@pytest.fixture
def teacher(make_teacher) -> TeacherProfile:
    return make_teacher()


@pytest.fixture
def student(make_student) -> Student:
    return make_student()


@pytest.fixture
def booking_service(db, fake_stripe, notifications, clock) -> BookingService:
    return BookingService(db, fake_stripe, notifications, clock)


@pytest.fixture
def booked(booking_service, teacher, student, make_slot):
    """Factory booking a fresh slot of ``teacher`` for ``student``."""

    def _book(starts_in: timedelta = timedelta(days=3), minutes: int = 60) -> Booking:
        slot = make_slot(teacher, starts_in=starts_in, minutes=minutes)
        created = booking_service.create_booking(student.parent_id, student.id, slot.id)
        assert created.booking.payment_status == PaymentStatus.PENDING.value
        return created.booking

    return _book


# ============================================================================
# HTTP client
# ============================================================================


def _bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    return _bearer


@pytest.fixture
def client(session_factory, fake_stripe, fake_video, notifications, clock):
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_stripe
    app.dependency_overrides[get_video_platform] = lambda: fake_video
    app.dependency_overrides[get_notification_service] = lambda: notifications
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
