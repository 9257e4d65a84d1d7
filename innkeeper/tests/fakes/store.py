"""Fake UnitOfWorkPort implementation for testing.

Holds all state in dictionaries. Write transactions are serialized by a
single asyncio.Lock (the in-memory analogue of BEGIN IMMEDIATE) and roll
back to a snapshot when the block raises. Every read and write copies the
model, so services only see committed changes through the store.
"""

import asyncio
import copy
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from innkeeper.core.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    Event,
    EventType,
    Page,
    Payment,
    PaymentStatus,
    Unit,
    UnitSearchCriteria,
)
from innkeeper.core.ports import (
    BookingStorePort,
    EventSinkPort,
    PaymentStorePort,
    StoreSession,
    UnitOfWorkPort,
    UnitStorePort,
)


class FakeUnitStore(UnitStorePort):
    """In-memory unit store bound to a FakeUnitOfWork."""

    def __init__(self, uow: "FakeUnitOfWork"):
        self._uow = uow

    async def get(self, unit_id: str, for_update: bool = False) -> Unit | None:
        await asyncio.sleep(0)
        self._uow.unit_get_calls.append((unit_id, for_update))
        unit = self._uow.units.get(unit_id)
        return copy.deepcopy(unit)

    async def save(self, unit: Unit) -> Unit:
        await asyncio.sleep(0)
        self._uow.units[unit.id] = copy.deepcopy(unit)
        self._uow.saved_units.append(unit.id)
        return unit

    async def delete(self, unit_id: str) -> None:
        self._uow.units.pop(unit_id, None)

    async def count_available(self) -> int:
        self._uow.count_available_calls += 1
        return sum(1 for unit in self._uow.units.values() if unit.available)

    async def search(self, criteria: UnitSearchCriteria) -> Page[Unit]:
        matches = []
        for unit in self._uow.units.values():
            if not unit.available:
                continue
            if criteria.number_of_rooms is not None and unit.number_of_rooms != criteria.number_of_rooms:
                continue
            if (
                criteria.accommodation_type is not None
                and unit.accommodation_type != criteria.accommodation_type
            ):
                continue
            if criteria.floor is not None and unit.floor != criteria.floor:
                continue
            if criteria.min_price is not None and unit.total_price < criteria.min_price:
                continue
            if criteria.max_price is not None and unit.total_price > criteria.max_price:
                continue
            if criteria.has_date_range and any(
                b.unit_id == unit.id
                and b.is_active
                and b.overlaps(criteria.check_in, criteria.check_out)
                for b in self._uow.bookings.values()
            ):
                continue
            matches.append(unit)

        matches.sort(key=lambda u: u.created_at, reverse=True)
        start = criteria.page * criteria.size
        items = [copy.deepcopy(u) for u in matches[start : start + criteria.size]]
        return Page.of(items, criteria.page, criteria.size, len(matches))


class FakeBookingStore(BookingStorePort):
    """In-memory booking store bound to a FakeUnitOfWork."""

    def __init__(self, uow: "FakeUnitOfWork"):
        self._uow = uow

    async def get(self, booking_id: str, for_update: bool = False) -> Booking | None:
        await asyncio.sleep(0)
        return copy.deepcopy(self._uow.bookings.get(booking_id))

    async def save(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        if booking.id in self._uow.fail_on_booking_save:
            raise RuntimeError(f"Simulated store failure saving booking {booking.id}")
        self._uow.bookings[booking.id] = copy.deepcopy(booking)
        self._uow.saved_bookings.append(booking.id)
        return booking

    async def find_overlapping(
        self,
        unit_id: str,
        statuses: Sequence[BookingStatus],
        check_in: datetime,
        check_out: datetime,
    ) -> list[Booking]:
        return [
            copy.deepcopy(b)
            for b in self._uow.bookings.values()
            if b.unit_id == unit_id and b.status in statuses and b.overlaps(check_in, check_out)
        ]

    async def find_by_status_and_deadline_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        return [
            copy.deepcopy(b)
            for b in self._uow.bookings.values()
            if b.status == status and b.payment_deadline < instant
        ]

    async def find_by_status_and_checkout_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        return [
            copy.deepcopy(b)
            for b in self._uow.bookings.values()
            if b.status == status and b.check_out <= instant
        ]

    async def find_by_user(self, user_id: str, page: int, size: int) -> Page[Booking]:
        owned = sorted(
            (b for b in self._uow.bookings.values() if b.user_id == user_id),
            key=lambda b: b.created_at,
            reverse=True,
        )
        start = page * size
        items = [copy.deepcopy(b) for b in owned[start : start + size]]
        return Page.of(items, page, size, len(owned))

    async def find_by_unit(
        self, unit_id: str, statuses: Sequence[BookingStatus]
    ) -> list[Booking]:
        return [
            copy.deepcopy(b)
            for b in self._uow.bookings.values()
            if b.unit_id == unit_id and b.status in statuses
        ]


class FakePaymentStore(PaymentStorePort):
    """In-memory payment store bound to a FakeUnitOfWork."""

    def __init__(self, uow: "FakeUnitOfWork"):
        self._uow = uow

    async def get(self, payment_id: str, for_update: bool = False) -> Payment | None:
        return copy.deepcopy(self._uow.payments.get(payment_id))

    async def save(self, payment: Payment) -> Payment:
        self._uow.payments[payment.id] = copy.deepcopy(payment)
        return payment

    async def find_by_booking(
        self, booking_id: str, status: PaymentStatus | None = None
    ) -> list[Payment]:
        found = [
            copy.deepcopy(p)
            for p in self._uow.payments.values()
            if p.booking_id == booking_id and (status is None or p.status == status)
        ]
        return sorted(found, key=lambda p: p.created_at)


class FakeEventSink(EventSinkPort):
    """In-memory event log.

    A failed write leaves no event behind, like a rolled-back savepoint.
    """

    def __init__(self, uow: "FakeUnitOfWork"):
        self._uow = uow

    async def record(
        self,
        event_type: EventType,
        user_id: str,
        entity_id: str,
        description: str,
    ) -> None:
        self._uow.event_record_calls += 1
        if self._uow.events_should_fail:
            raise RuntimeError("Simulated event sink failure")
        self._uow.events.append(
            Event(
                id=str(uuid.uuid4()),
                event_type=event_type,
                user_id=user_id,
                entity_id=entity_id,
                description=description,
                created_at=datetime.now(timezone.utc),
            )
        )


class FakeSession(StoreSession):
    """Stores bound to the fake unit of work."""

    def __init__(self, uow: "FakeUnitOfWork"):
        self.units = FakeUnitStore(uow)
        self.bookings = FakeBookingStore(uow)
        self.payments = FakePaymentStore(uow)
        self.events = FakeEventSink(uow)


class FakeUnitOfWork(UnitOfWorkPort):
    """In-memory unit of work for testing.

    Tracks transactions, commits and rollbacks for assertions, and exposes
    toggles to simulate event sink and booking write failures.
    """

    def __init__(self):
        """Initialize with empty stores."""
        self.units: dict[str, Unit] = {}
        self.bookings: dict[str, Booking] = {}
        self.payments: dict[str, Payment] = {}
        self.events: list[Event] = []

        self.events_should_fail = False
        self.fail_on_booking_save: set[str] = set()

        self.transaction_count = 0
        self.read_only_transaction_count = 0
        self.commit_count = 0
        self.rollback_count = 0
        self.count_available_calls = 0
        self.event_record_calls = 0
        self.unit_get_calls: list[tuple[str, bool]] = []
        self.saved_units: list[str] = []
        self.saved_bookings: list[str] = []
        self.closed = False

        self._write_lock = asyncio.Lock()

    def add_unit(self, unit: Unit) -> Unit:
        """Seed a unit directly, bypassing services."""
        self.units[unit.id] = copy.deepcopy(unit)
        return unit

    def add_booking(self, booking: Booking) -> Booking:
        """Seed a booking directly, bypassing services."""
        self.bookings[booking.id] = copy.deepcopy(booking)
        return booking

    def add_payment(self, payment: Payment) -> Payment:
        """Seed a payment directly, bypassing services."""
        self.payments[payment.id] = copy.deepcopy(payment)
        return payment

    def events_of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def set_events_should_fail(self, should_fail: bool) -> None:
        self.events_should_fail = should_fail

    def active_bookings_for(self, unit_id: str) -> list[Booking]:
        return [
            b
            for b in self.bookings.values()
            if b.unit_id == unit_id and b.status in ACTIVE_BOOKING_STATUSES
        ]

    def _snapshot(self) -> tuple[dict, dict, dict, list]:
        return (
            copy.deepcopy(self.units),
            copy.deepcopy(self.bookings),
            copy.deepcopy(self.payments),
            list(self.events),
        )

    def _restore(self, snapshot: tuple[dict, dict, dict, list]) -> None:
        self.units, self.bookings, self.payments, self.events = snapshot

    @asynccontextmanager
    async def transaction(self, read_only: bool = False) -> AsyncIterator[StoreSession]:
        self.transaction_count += 1
        if read_only:
            self.read_only_transaction_count += 1
            yield FakeSession(self)
            return

        async with self._write_lock:
            snapshot = self._snapshot()
            try:
                yield FakeSession(self)
            except BaseException:
                self._restore(snapshot)
                self.rollback_count += 1
                raise
            self.commit_count += 1

    async def close(self) -> None:
        self.closed = True
