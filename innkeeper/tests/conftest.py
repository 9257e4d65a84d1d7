"""Shared fixtures for Innkeeper tests."""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from innkeeper.core.models import (
    AccommodationType,
    Booking,
    BookingStatus,
    Unit,
)
from innkeeper.tests.fakes import FakeAvailabilityCache, FakeClock, FakeUnitOfWork

NOW = datetime(2030, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at NOW until advanced."""
    return FakeClock(NOW)


@pytest.fixture
def uow() -> FakeUnitOfWork:
    return FakeUnitOfWork()


@pytest.fixture
def cache() -> FakeAvailabilityCache:
    return FakeAvailabilityCache()


@pytest.fixture
def make_unit() -> Callable[..., Unit]:
    """Factory for units with sensible defaults."""

    def _make(**overrides) -> Unit:
        fields = {
            "id": str(uuid.uuid4()),
            "number_of_rooms": 2,
            "accommodation_type": AccommodationType.FLAT,
            "floor": 1,
            "base_price": Decimal("100.00"),
            "total_price": Decimal("115.00"),
            "description": "Two-room flat",
            "available": True,
            "created_at": NOW - timedelta(days=30),
            "updated_at": NOW - timedelta(days=30),
        }
        fields.update(overrides)
        return Unit(**fields)

    return _make


@pytest.fixture
def make_booking() -> Callable[..., Booking]:
    """Factory for bookings with sensible defaults."""

    def _make(unit_id: str, **overrides) -> Booking:
        fields = {
            "id": str(uuid.uuid4()),
            "unit_id": unit_id,
            "user_id": "user-1",
            "check_in": NOW + timedelta(days=1),
            "check_out": NOW + timedelta(days=3),
            "total_price": Decimal("115.00"),
            "status": BookingStatus.PENDING_PAYMENT,
            "payment_deadline": NOW + timedelta(minutes=15),
            "created_at": NOW,
            "updated_at": NOW,
        }
        fields.update(overrides)
        return Booking(**fields)

    return _make
