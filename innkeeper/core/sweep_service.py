"""Sweep logic for time-driven booking transitions.

This module implements the two periodic scans of the booking lifecycle:
pending bookings whose payment deadline has passed are cancelled, and
confirmed bookings whose check-out has passed are completed. Both release
the unit.

The payment deadline is enforced only here, so a booking can outlive its
deadline by up to one sweep interval before it is cancelled.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from .audit import record_event
from .availability import invalidate_available_count
from .models import Booking, BookingStatus, EventType, SweepResult
from .ports import AvailabilityCachePort, Clock, SweepPort, UnitOfWorkPort, utc_now

logger = logging.getLogger(__name__)

# Outcome of one sweep item: True when applied, False when skipped.
ItemHandler = Callable[[Booking, datetime], Awaitable[bool]]


class SweepService(SweepPort):
    """Implements the expiry and completion sweeps.

    Each selected booking is handled in its own unit of work and re-read
    under lock first, so a booking confirmed or cancelled between selection
    and processing is skipped instead of being transitioned twice. One
    item's failure is logged and the sweep moves on.
    """

    def __init__(
        self,
        uow: UnitOfWorkPort,
        cache: AvailabilityCachePort,
        clock: Clock = utc_now,
    ):
        self.uow = uow
        self.cache = cache
        self.clock = clock

    async def process_expired_bookings(self) -> SweepResult:
        logger.info("Processing expired bookings")
        now = self.clock()

        try:
            async with self.uow.transaction(read_only=True) as session:
                expired = await session.bookings.find_by_status_and_deadline_before(
                    BookingStatus.PENDING_PAYMENT, now
                )
        except Exception as e:
            logger.error(f"Failed to select expired bookings: {e}", exc_info=True)
            return SweepResult(sweep="expiry", selected=0, processed=0, timestamp=now)

        logger.info(f"Found {len(expired)} expired bookings")
        return await self._sweep("expiry", expired, now, self._expire_one)

    async def process_completed_bookings(self) -> SweepResult:
        logger.info("Processing completed bookings")
        now = self.clock()

        try:
            async with self.uow.transaction(read_only=True) as session:
                finished = await session.bookings.find_by_status_and_checkout_before(
                    BookingStatus.CONFIRMED, now
                )
        except Exception as e:
            logger.error(f"Failed to select completed bookings: {e}", exc_info=True)
            return SweepResult(sweep="completion", selected=0, processed=0, timestamp=now)

        logger.info(f"Found {len(finished)} completed bookings")
        return await self._sweep("completion", finished, now, self._complete_one)

    async def _sweep(
        self,
        name: str,
        bookings: list[Booking],
        now: datetime,
        handler: ItemHandler,
    ) -> SweepResult:
        processed = 0
        skipped = 0
        failed = 0

        for booking in bookings:
            try:
                if await handler(booking, now):
                    processed += 1
                else:
                    skipped += 1
            except Exception as e:
                failed += 1
                logger.error(
                    f"Failed to apply {name} sweep to booking {booking.id}: {e}",
                    exc_info=True,
                )
                # Continue with next booking

        if processed:
            await invalidate_available_count(self.cache)

        return SweepResult(
            sweep=name,
            selected=len(bookings),
            processed=processed,
            skipped=skipped,
            failed=failed,
            timestamp=now,
        )

    async def _expire_one(self, selected: Booking, now: datetime) -> bool:
        async with self.uow.transaction() as session:
            booking = await session.bookings.get(selected.id, for_update=True)
            if booking is None or not booking.is_payment_overdue(now):
                logger.debug(f"Booking {selected.id} no longer expirable, skipping")
                return False

            booking.expire(now)
            await session.bookings.save(booking)

            unit = await session.units.get(booking.unit_id, for_update=True)
            if unit is not None:
                unit.mark_available(now)
                await session.units.save(unit)
                logger.info(f"Marked unit {unit.id} as available after booking expiration")

            await record_event(
                session,
                EventType.BOOKING_EXPIRED,
                booking.user_id,
                booking.id,
                "Booking expired and cancelled",
            )
        return True

    async def _complete_one(self, selected: Booking, now: datetime) -> bool:
        async with self.uow.transaction() as session:
            booking = await session.bookings.get(selected.id, for_update=True)
            if booking is None or not booking.is_stay_over(now):
                logger.debug(f"Booking {selected.id} no longer completable, skipping")
                return False

            booking.complete(now)
            await session.bookings.save(booking)

            unit = await session.units.get(booking.unit_id, for_update=True)
            if unit is not None:
                unit.mark_available(now)
                await session.units.save(unit)
                logger.info(f"Marked unit {unit.id} as available after booking completion")

            await record_event(
                session,
                EventType.BOOKING_COMPLETED,
                booking.user_id,
                booking.id,
                "Booking completed",
            )
        return True
