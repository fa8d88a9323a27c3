# backend/tests/conftest.py
"""
Pytest configuration for the Therapport backend.

Sets the test environment before any ``therapport`` import, patches the
Resend client so no test can send a real email, and provides an in-memory
database, a frozen business clock and factories for the rows most tests need.
"""

import os

# Set testing mode BEFORE any therapport imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

import unittest.mock

# Mock Resend globally so no test can deliver a real email
global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from therapport.core import timezone_utils
from therapport.core.enums import (
    BookingStatus,
    BookingType,
    CreditSourceType,
    LocationName,
    MembershipType,
    UserRole,
    UserStatus,
)
from therapport.database import Base

# Import models so Base.metadata is populated for create_all.
import therapport.models  # noqa: F401
from therapport.models import (
    Booking,
    CreditTransaction,
    FreeBookingVoucher,
    Location,
    Membership,
    Room,
    User,
)
from therapport.services.booking_service import BookingService

# Monday 2 March 2026, 09:00 in London (GMT, so UTC and local agree)
FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = FROZEN_NOW.date()


class FrozenDatetime(datetime):
    """``datetime`` whose ``now`` is pinned to ``FROZEN_NOW``."""

    @classmethod
    def now(cls, tz=None):
        if tz is None:
            return FROZEN_NOW.replace(tzinfo=None)
        return FROZEN_NOW.astimezone(tz)


@pytest.fixture(autouse=True)
def frozen_now(monkeypatch) -> datetime:
    """Pin the business clock used for "today", notice windows and grant dates."""
    monkeypatch.setattr(timezone_utils, "datetime", FrozenDatetime)
    return FROZEN_NOW


@pytest.fixture(autouse=True)
def enqueued_emails(monkeypatch) -> list:
    """Capture notification emails instead of talking to the broker."""
    sent: list = []

    def _capture(self, kind: str, booking_id: str) -> None:
        sent.append((kind, booking_id))

    monkeypatch.setattr(BookingService, "_enqueue_email", _capture)
    return sent


@pytest.fixture
def db() -> Iterator[Session]:
    """A session on a fresh in-memory database, rebuilt for every test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def rooms(db: Session) -> dict:
    """One active room at each location, keyed by location name."""
    created = {}
    for number, name in enumerate((LocationName.KENSINGTON, LocationName.PIMLICO), start=1):
        location = Location(name=name.value)
        db.add(location)
        db.flush()
        room = Room(location_id=location.id, name=f"{name.value} Room {number}", room_number=number)
        db.add(room)
        created[name] = room
    db.commit()
    return created


@pytest.fixture
def kensington_room(rooms: dict) -> Room:
    return rooms[LocationName.KENSINGTON]


@pytest.fixture
def pimlico_room(rooms: dict) -> Room:
    return rooms[LocationName.PIMLICO]


@pytest.fixture
def make_user(db: Session):
    """Factory for users, each with a membership unless ``membership_type`` is None."""
    counter = {"n": 0}

    def _make(
        *,
        role: UserRole = UserRole.PRACTITIONER,
        status: UserStatus = UserStatus.ACTIVE,
        membership_type: Optional[MembershipType] = MembershipType.PERMANENT,
        **membership_fields,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=f"practitioner{counter['n']}@example.com",
            first_name="Sam",
            last_name=f"Taylor{counter['n']}",
            role=role.value,
            status=status.value,
        )
        db.add(user)
        db.flush()
        if membership_type is not None:
            db.add(Membership(user_id=user.id, type=membership_type.value, **membership_fields))
        db.commit()
        return user

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def admin(make_user) -> User:
    return make_user(role=UserRole.ADMIN)


@pytest.fixture
def add_credit(db: Session):
    """Insert a credit grant directly, with full control over its dates."""

    def _add(
        user: User,
        amount_pence: int,
        *,
        expiry_date: date,
        grant_date: date = TODAY,
        used_pence: int = 0,
        source_type: CreditSourceType = CreditSourceType.MANUAL,
        source_id: Optional[str] = None,
        revoked: bool = False,
    ) -> CreditTransaction:
        row = CreditTransaction(
            user_id=user.id,
            amount_pence=amount_pence,
            used_pence=used_pence,
            remaining_pence=amount_pence - used_pence,
            grant_date=grant_date,
            expiry_date=expiry_date,
            source_type=source_type.value,
            source_id=source_id,
            revoked=revoked,
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture
def add_voucher(db: Session):
    def _add(
        user: User,
        hours: str,
        *,
        expiry_date: date = TODAY + timedelta(days=30),
        used: str = "0.00",
    ) -> FreeBookingVoucher:
        voucher = FreeBookingVoucher(
            user_id=user.id,
            hours_allocated=Decimal(hours),
            hours_used=Decimal(used),
            expiry_date=expiry_date,
        )
        db.add(voucher)
        db.commit()
        return voucher

    return _add


@pytest.fixture
def add_booking(db: Session):
    """Insert a confirmed booking row without touching either ledger."""

    def _add(
        user: User,
        room: Room,
        booking_date: date,
        start: str,
        end: str,
        *,
        total_price_pence: int = 0,
        credit_used_pence: int = 0,
        voucher_hours_used: str = "0.00",
        status: BookingStatus = BookingStatus.CONFIRMED,
    ) -> Booking:
        booking = Booking(
            user_id=user.id,
            room_id=room.id,
            booking_date=booking_date,
            start_time=datetime.strptime(start, "%H:%M").time(),
            end_time=datetime.strptime(end, "%H:%M").time(),
            price_per_hour_pence=0,
            total_price_pence=total_price_pence,
            credit_used_pence=credit_used_pence,
            voucher_hours_used=Decimal(voucher_hours_used),
            status=status.value,
            booking_type=BookingType.AD_HOC.value,
        )
        db.add(booking)
        db.commit()
        return booking

    return _add
