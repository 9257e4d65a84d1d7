"""Booking service: implements BookingPort for request-driven operations.

This is the request-facing half of the booking lifecycle engine. Each
mutating operation runs as one unit of work spanning the unit, booking and
event writes, and invalidates the cached available-unit count after any
availability change.
"""

import logging
import uuid
from datetime import datetime, timedelta

from .audit import record_event
from .availability import invalidate_available_count
from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from .models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    EventType,
    Page,
)
from .ports import (
    AvailabilityCachePort,
    BookingPort,
    Clock,
    StoreSession,
    UnitOfWorkPort,
    utc_now,
)
from .pricing import calculate_total_price

logger = logging.getLogger(__name__)


def validate_stay_dates(check_in: datetime, check_out: datetime, now: datetime) -> None:
    """Reject stays that start in the past or end before they begin.

    Raises:
        InvalidArgumentError: If either date is not strictly after now, or
            check_out is not strictly after check_in.
    """
    if check_in.tzinfo is None or check_out.tzinfo is None:
        raise InvalidArgumentError("check_in and check_out must be timezone-aware")
    if check_in <= now:
        raise InvalidArgumentError(f"Invalid check-in date {check_in.isoformat()}")
    if check_out <= now or check_out <= check_in:
        raise InvalidArgumentError(f"Invalid check-out date {check_out.isoformat()}")


async def load_owned_booking(
    session: StoreSession, booking_id: str, user_id: str, action: str
) -> Booking:
    """Load a booking under lock and check the acting user owns it."""
    booking = await session.bookings.get(booking_id, for_update=True)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    if booking.user_id != user_id:
        raise ForbiddenError(f"User is not authorized to {action} booking {booking_id}")
    return booking


class BookingService(BookingPort):
    """Core implementation of BookingPort.

    The unit row lock taken at the start of create_booking is the
    authoritative guard against double booking; the overlap query is a
    secondary check behind it.
    """

    def __init__(
        self,
        uow: UnitOfWorkPort,
        cache: AvailabilityCachePort,
        payment_timeout_minutes: int = 15,
        markup_percent: int = 15,
        clock: Clock = utc_now,
    ):
        self.uow = uow
        self.cache = cache
        self.payment_timeout = timedelta(minutes=payment_timeout_minutes)
        self.markup_percent = markup_percent
        self.clock = clock

    async def create_booking(
        self, unit_id: str, check_in: datetime, check_out: datetime, user_id: str
    ) -> Booking:
        logger.info(f"Creating booking for unit {unit_id} by user {user_id}")

        now = self.clock()
        validate_stay_dates(check_in, check_out, now)

        async with self.uow.transaction() as session:
            unit = await session.units.get(unit_id, for_update=True)
            if unit is None:
                raise NotFoundError("Unit", unit_id)
            if not unit.available:
                raise ConflictError(f"Unit {unit_id} is not available")

            overlapping = await session.bookings.find_overlapping(
                unit_id, ACTIVE_BOOKING_STATUSES, check_in, check_out
            )
            if overlapping:
                raise ConflictError(
                    f"Unit {unit_id} is already booked for the selected dates"
                )

            total_price = calculate_total_price(unit.base_price, self.markup_percent)
            payment_deadline = now + self.payment_timeout

            unit.mark_unavailable(now)
            await session.units.save(unit)
            logger.info(f"Marked unit {unit_id} as unavailable")

            booking = Booking(
                id=str(uuid.uuid4()),
                unit_id=unit_id,
                user_id=user_id,
                check_in=check_in,
                check_out=check_out,
                total_price=total_price,
                status=BookingStatus.PENDING_PAYMENT,
                payment_deadline=payment_deadline,
                created_at=now,
                updated_at=now,
            )
            await session.bookings.save(booking)

            await record_event(
                session,
                EventType.BOOKING_CREATED,
                user_id,
                booking.id,
                f"Booking created with total price {total_price} "
                f"and payment deadline {payment_deadline.isoformat()}",
            )

        await invalidate_available_count(self.cache)
        logger.info(
            f"Created booking {booking.id} with total price {total_price} "
            f"and payment deadline {payment_deadline.isoformat()}"
        )
        return booking

    async def get_booking(self, booking_id: str) -> Booking:
        async with self.uow.transaction(read_only=True) as session:
            booking = await session.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def confirm_booking(self, booking_id: str, user_id: str) -> Booking:
        logger.info(f"Confirming booking {booking_id}")
        now = self.clock()

        async with self.uow.transaction() as session:
            booking = await load_owned_booking(session, booking_id, user_id, "confirm")
            booking.confirm(now)
            await session.bookings.save(booking)
            await record_event(
                session, EventType.BOOKING_CONFIRMED, user_id, booking.id, "Booking confirmed"
            )

        logger.info(
            f"Booking {booking_id} confirmed, unit {booking.unit_id} remains unavailable"
        )
        return booking

    async def cancel_booking(self, booking_id: str, user_id: str) -> Booking:
        logger.info(f"Cancelling booking {booking_id}")
        now = self.clock()

        async with self.uow.transaction() as session:
            booking = await load_owned_booking(session, booking_id, user_id, "cancel")
            booking.cancel(now)
            await session.bookings.save(booking)

            unit = await session.units.get(booking.unit_id, for_update=True)
            if unit is not None:
                unit.mark_available(now)
                await session.units.save(unit)
                logger.info(
                    f"Marked unit {unit.id} as available after booking cancellation"
                )
            else:
                logger.warning(
                    f"Unit {booking.unit_id} of booking {booking_id} no longer exists"
                )

            await record_event(
                session, EventType.BOOKING_CANCELLED, user_id, booking.id, "Booking cancelled"
            )

        await invalidate_available_count(self.cache)
        return booking

    async def get_user_bookings(
        self, user_id: str, page: int = 0, size: int = 10
    ) -> Page[Booking]:
        if page < 0:
            raise InvalidArgumentError(f"page must be >= 0, got {page}")
        if size < 1:
            raise InvalidArgumentError(f"size must be >= 1, got {size}")

        logger.debug(f"Getting bookings for user {user_id}, page {page}, size {size}")
        async with self.uow.transaction(read_only=True) as session:
            return await session.bookings.find_by_user(user_id, page, size)
