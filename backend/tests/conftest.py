# backend/tests/conftest.py
"""
Shared fixtures for the courtbook test suite.

Every test gets a fresh in-memory SQLite database. StaticPool keeps a single
connection alive so the schema survives across sessions and worker threads.
Time is pinned with ``clock``: 2025-06-02 10:00 in America/Los_Angeles.
"""

import os

# Settings are read at import time; point them at throwaway resources first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, time
from decimal import Decimal
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import ulid

import courtbook.models  # noqa: F401  registers every table
from courtbook.api.dependencies import (
    get_availability_service,
    get_booking_service,
    get_db,
    get_payment_service,
    get_stripe_service,
)
from courtbook.core.constants import ACTION_INSTANT_BOOK, ACTION_REQUEST_PRIVATE
from courtbook.database import Base, build_engine
from courtbook.models.availability import Availability
from courtbook.models.booking import Booking, BookingStatus, RecurringBooking
from courtbook.models.payment import Payment
from courtbook.models.slot import SlotInstance
from courtbook.models.user import User
from courtbook.models.venue import Venue, VenueAdminConfig
from courtbook.services.availability_service import AvailabilityService
from courtbook.services.booking_service import BookingService
from courtbook.services.payment_service import PaymentService
from courtbook.services.stripe_service import StripeService

from testkit import NOW


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return lambda: NOW


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_user(db):
    def _make(**overrides) -> User:
        fields = {
            "email": f"user-{ulid.ULID()}@example.com".lower(),
            "full_name": "Test User",
            "is_renter": True,
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def renter(make_user):
    return make_user(full_name="Rita Renter")


@pytest.fixture
def owner(make_user):
    return make_user(full_name="Owen Owner", is_venue_owner=True, is_renter=False)


@pytest.fixture
def admin(make_user):
    return make_user(full_name="Ada Admin", is_admin=True, is_renter=False)


@pytest.fixture
def make_venue(db, owner):
    def _make(**overrides) -> Venue:
        fields = {
            "owner_id": owner.id,
            "name": "Downtown Court",
            "hourly_rate": Decimal("40.00"),
            "instant_booking": True,
            "insurance_required": False,
        }
        fields.update(overrides)
        venue = Venue(**fields)
        db.add(venue)
        db.commit()
        return venue

    return _make


@pytest.fixture
def venue(make_venue):
    """Instant-booking venue without insurance: the immediate payment flow."""
    return make_venue()


@pytest.fixture
def request_venue(make_venue):
    return make_venue(name="Uptown Gym", instant_booking=False)


@pytest.fixture
def make_admin_config(db):
    def _make(venue: Venue, **overrides) -> VenueAdminConfig:
        fields = {
            "venue_id": venue.id,
            "blackout_dates": [],
            "holiday_dates": [],
            "operating_hours": [],
        }
        fields.update(overrides)
        config = VenueAdminConfig(**fields)
        db.add(config)
        db.commit()
        return config

    return _make


@pytest.fixture
def make_availability(db):
    def _make(venue: Venue, day: date, start: time, end: time, **overrides) -> Availability:
        window = Availability(
            venue_id=venue.id, date=day, start_time=start, end_time=end, **overrides
        )
        db.add(window)
        db.commit()
        return window

    return _make


@pytest.fixture
def make_slot_instance(db):
    def _make(
        venue: Venue, day: date, start: time, end: time, action_type=None, **overrides
    ) -> SlotInstance:
        if action_type is None:
            action_type = ACTION_INSTANT_BOOK if venue.instant_booking else ACTION_REQUEST_PRIVATE
        instance = SlotInstance(
            venue_id=venue.id,
            date=day,
            start_time=start,
            end_time=end,
            action_type=action_type,
            **overrides,
        )
        db.add(instance)
        db.commit()
        return instance

    return _make


@pytest.fixture
def make_booking(db):
    def _make(
        venue: Venue, renter: User, day: date, start: time, end: time, **overrides
    ) -> Booking:
        fields = {
            "venue_id": venue.id,
            "renter_id": renter.id,
            "date": day,
            "start_time": start,
            "end_time": end,
            "status": BookingStatus.PENDING.value,
            "total_amount": Decimal("40.00"),
            "insurance_required": bool(venue.insurance_required),
            "insurance_approved": not venue.insurance_required,
        }
        fields.update(overrides)
        booking = Booking(**fields)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_recurring(db):
    def _make(parent: Booking, day: date, **overrides) -> RecurringBooking:
        fields = {
            "parent_booking_id": parent.id,
            "venue_id": parent.venue_id,
            "renter_id": parent.renter_id,
            "date": day,
            "start_time": parent.start_time,
            "end_time": parent.end_time,
            "status": BookingStatus.PENDING.value,
            "total_amount": parent.total_amount,
        }
        fields.update(overrides)
        occurrence = RecurringBooking(**fields)
        db.add(occurrence)
        db.commit()
        return occurrence

    return _make


@pytest.fixture
def make_payment(db):
    def _make(booking: Booking, **overrides) -> Payment:
        fields = {
            "booking_id": booking.id,
            "renter_id": booking.renter_id,
            "venue_id": booking.venue_id,
            "amount": booking.total_amount,
            "platform_fee": Decimal("0.00"),
            "venue_owner_amount": booking.total_amount,
            "status": "pending",
        }
        fields.update(overrides)
        payment = Payment(**fields)
        db.add(payment)
        db.commit()
        return payment

    return _make


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def stripe_gateway():
    """Stripe gateway double; no test ever reaches the real API."""
    return MagicMock(spec=StripeService)


@pytest.fixture
def payment_service(db, stripe_gateway, clock):
    return PaymentService(db, stripe_gateway, now_provider=clock)


@pytest.fixture
def booking_service(db, payment_service, clock):
    return BookingService(db, payment_service=payment_service, now_provider=clock)


# ============================================================================
# API client
# ============================================================================


@pytest.fixture
def client(db, stripe_gateway, clock):
    from courtbook.main import create_app

    app = create_app()

    def _override_get_db():
        yield db

    def _payment_service():
        return PaymentService(db, stripe_gateway, now_provider=clock)

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: stripe_gateway
    app.dependency_overrides[get_payment_service] = _payment_service
    app.dependency_overrides[get_booking_service] = lambda: BookingService(
        db, payment_service=_payment_service(), now_provider=clock
    )
    app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(
        db, now_provider=clock
    )

    with TestClient(app) as test_client:
        yield test_client
