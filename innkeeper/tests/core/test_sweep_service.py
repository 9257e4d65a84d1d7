"""Unit tests for SweepService.

Covers the expiry and completion sweeps: selection boundaries, the per-item
re-check under lock, failure isolation between items, and cache
invalidation.
"""

from datetime import timedelta

import pytest

from innkeeper.core.availability import AVAILABLE_COUNT_KEY
from innkeeper.core.models import BookingStatus, EventType
from innkeeper.core.sweep_service import SweepService
from innkeeper.tests.conftest import NOW
from innkeeper.tests.fakes import FakeAvailabilityCache, FakeClock, FakeUnitOfWork


@pytest.fixture
def service(uow: FakeUnitOfWork, cache: FakeAvailabilityCache, clock: FakeClock) -> SweepService:
    return SweepService(uow, cache, clock=clock)


@pytest.fixture
def held_unit(uow: FakeUnitOfWork, make_unit):
    """A unit currently held by a booking."""
    return uow.add_unit(make_unit(available=False))


# ============================================================================
# Expiry sweep
# ============================================================================


class TestExpirySweep:
    @pytest.mark.asyncio
    async def test_expires_overdue_pending_booking(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(held_unit.id, payment_deadline=NOW - timedelta(minutes=1))
        )

        result = await service.process_expired_bookings()

        assert result.sweep == "expiry"
        assert result.selected == 1
        assert result.processed == 1
        assert result.failed == 0
        assert result.timestamp == NOW
        assert uow.bookings[booking.id].status == BookingStatus.CANCELLED
        assert uow.units[held_unit.id].available is True

    @pytest.mark.asyncio
    async def test_records_expired_event_for_booking_owner(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                held_unit.id,
                user_id="guest-7",
                payment_deadline=NOW - timedelta(minutes=1),
            )
        )

        await service.process_expired_bookings()

        events = uow.events_of_type(EventType.BOOKING_EXPIRED)
        assert len(events) == 1
        assert events[0].entity_id == booking.id
        assert events[0].user_id == "guest-7"
        assert events[0].description == "Booking expired and cancelled"

    @pytest.mark.asyncio
    async def test_deadline_equal_to_now_is_not_expired(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(make_booking(held_unit.id, payment_deadline=NOW))

        result = await service.process_expired_bookings()

        assert result.selected == 0
        assert uow.bookings[booking.id].status == BookingStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_confirmed_bookings_are_not_expired(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                held_unit.id,
                status=BookingStatus.CONFIRMED,
                payment_deadline=NOW - timedelta(hours=1),
            )
        )

        result = await service.process_expired_bookings()

        assert result.selected == 0
        assert uow.bookings[booking.id].status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        uow.add_booking(make_booking(held_unit.id, payment_deadline=NOW - timedelta(minutes=1)))

        await service.process_expired_bookings()
        second = await service.process_expired_bookings()

        assert second.selected == 0
        assert second.processed == 0
        assert len(uow.events_of_type(EventType.BOOKING_EXPIRED)) == 1

    @pytest.mark.asyncio
    async def test_booking_expires_after_clock_passes_deadline(
        self, service: SweepService, uow: FakeUnitOfWork, clock: FakeClock, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(make_booking(held_unit.id))

        assert (await service.process_expired_bookings()).processed == 0
        clock.advance(timedelta(minutes=16))
        assert (await service.process_expired_bookings()).processed == 1
        assert uow.bookings[booking.id].status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_stale_selection_is_skipped(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        stale = make_booking(held_unit.id, payment_deadline=NOW - timedelta(minutes=1))
        confirmed = make_booking(
            held_unit.id,
            id=stale.id,
            status=BookingStatus.CONFIRMED,
            payment_deadline=stale.payment_deadline,
        )
        uow.add_booking(confirmed)

        applied = await service._expire_one(stale, NOW)

        assert applied is False
        assert uow.bookings[stale.id].status == BookingStatus.CONFIRMED
        assert uow.units[held_unit.id].available is False
        assert uow.events == []

    @pytest.mark.asyncio
    async def test_failing_item_does_not_stop_sweep(
        self, service: SweepService, uow: FakeUnitOfWork, make_unit, make_booking
    ) -> None:
        unit_a = uow.add_unit(make_unit(available=False))
        unit_b = uow.add_unit(make_unit(available=False))
        bad = uow.add_booking(
            make_booking(unit_a.id, payment_deadline=NOW - timedelta(minutes=2))
        )
        good = uow.add_booking(
            make_booking(unit_b.id, payment_deadline=NOW - timedelta(minutes=1))
        )
        uow.fail_on_booking_save.add(bad.id)

        result = await service.process_expired_bookings()

        assert result.selected == 2
        assert result.processed == 1
        assert result.failed == 1
        assert uow.bookings[bad.id].status == BookingStatus.PENDING_PAYMENT
        assert uow.units[unit_a.id].available is False
        assert uow.bookings[good.id].status == BookingStatus.CANCELLED
        assert uow.units[unit_b.id].available is True

    @pytest.mark.asyncio
    async def test_invalidates_cache_once_when_processed(
        self, service: SweepService, uow: FakeUnitOfWork, cache: FakeAvailabilityCache, make_unit, make_booking
    ) -> None:
        for _ in range(3):
            unit = uow.add_unit(make_unit(available=False))
            uow.add_booking(make_booking(unit.id, payment_deadline=NOW - timedelta(minutes=1)))

        await service.process_expired_bookings()

        assert cache.invalidate_calls == [AVAILABLE_COUNT_KEY]

    @pytest.mark.asyncio
    async def test_no_invalidation_when_nothing_processed(
        self, service: SweepService, cache: FakeAvailabilityCache
    ) -> None:
        await service.process_expired_bookings()
        assert cache.invalidate_calls == []

    @pytest.mark.asyncio
    async def test_cache_failure_is_tolerated(
        self, service: SweepService, uow: FakeUnitOfWork, cache: FakeAvailabilityCache, held_unit, make_booking
    ) -> None:
        uow.add_booking(make_booking(held_unit.id, payment_deadline=NOW - timedelta(minutes=1)))
        cache.set_should_fail(True)

        result = await service.process_expired_bookings()

        assert result.processed == 1

    @pytest.mark.asyncio
    async def test_event_failure_still_expires(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(held_unit.id, payment_deadline=NOW - timedelta(minutes=1))
        )
        uow.set_events_should_fail(True)

        result = await service.process_expired_bookings()

        assert result.processed == 1
        assert uow.bookings[booking.id].status == BookingStatus.CANCELLED


# ============================================================================
# Completion sweep
# ============================================================================


class TestCompletionSweep:
    @pytest.mark.asyncio
    async def test_completes_confirmed_booking_after_checkout(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                held_unit.id,
                status=BookingStatus.CONFIRMED,
                check_in=NOW - timedelta(days=3),
                check_out=NOW - timedelta(hours=1),
            )
        )

        result = await service.process_completed_bookings()

        assert result.sweep == "completion"
        assert result.processed == 1
        assert uow.bookings[booking.id].status == BookingStatus.COMPLETED
        assert uow.units[held_unit.id].available is True
        events = uow.events_of_type(EventType.BOOKING_COMPLETED)
        assert [e.entity_id for e in events] == [booking.id]

    @pytest.mark.asyncio
    async def test_checkout_equal_to_now_completes(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                held_unit.id,
                status=BookingStatus.CONFIRMED,
                check_in=NOW - timedelta(days=2),
                check_out=NOW,
            )
        )

        result = await service.process_completed_bookings()

        assert result.processed == 1
        assert uow.bookings[booking.id].status == BookingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_future_checkout_is_left_alone(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(make_booking(held_unit.id, status=BookingStatus.CONFIRMED))

        result = await service.process_completed_bookings()

        assert result.selected == 0
        assert uow.bookings[booking.id].status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_pending_booking_past_checkout_is_not_completed(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                held_unit.id,
                check_in=NOW - timedelta(days=3),
                check_out=NOW - timedelta(days=1),
                payment_deadline=NOW + timedelta(minutes=5),
            )
        )

        result = await service.process_completed_bookings()

        assert result.selected == 0
        assert uow.bookings[booking.id].status == BookingStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_stale_selection_is_skipped(
        self, service: SweepService, uow: FakeUnitOfWork, held_unit, make_booking
    ) -> None:
        stale = make_booking(
            held_unit.id,
            status=BookingStatus.CONFIRMED,
            check_in=NOW - timedelta(days=3),
            check_out=NOW - timedelta(hours=1),
        )
        cancelled = make_booking(
            held_unit.id,
            id=stale.id,
            status=BookingStatus.CANCELLED,
            check_in=stale.check_in,
            check_out=stale.check_out,
        )
        uow.add_booking(cancelled)

        assert await service._complete_one(stale, NOW) is False
        assert uow.bookings[stale.id].status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_missing_unit_still_completes(
        self, service: SweepService, uow: FakeUnitOfWork, make_booking
    ) -> None:
        booking = uow.add_booking(
            make_booking(
                "deleted-unit",
                status=BookingStatus.CONFIRMED,
                check_in=NOW - timedelta(days=3),
                check_out=NOW - timedelta(hours=1),
            )
        )

        result = await service.process_completed_bookings()

        assert result.processed == 1
        assert uow.bookings[booking.id].status == BookingStatus.COMPLETED
