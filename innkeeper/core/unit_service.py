"""Unit management service.

Creates, re-prices, deletes and searches units. The available flag is owned
by the booking lifecycle and is never changed here except for the initial
value on creation.
"""

import logging
import uuid

from .audit import record_event
from .availability import invalidate_available_count, read_available_count
from .errors import ConflictError, NotFoundError
from .models import (
    ACTIVE_BOOKING_STATUSES,
    EventType,
    Page,
    Unit,
    UnitRequest,
    UnitSearchCriteria,
)
from .ports import AvailabilityCachePort, Clock, UnitOfWorkPort, UnitPort, utc_now
from .pricing import calculate_total_price

logger = logging.getLogger(__name__)


class UnitService(UnitPort):
    """Core implementation of UnitPort."""

    def __init__(
        self,
        uow: UnitOfWorkPort,
        cache: AvailabilityCachePort,
        markup_percent: int = 15,
        clock: Clock = utc_now,
    ):
        self.uow = uow
        self.cache = cache
        self.markup_percent = markup_percent
        self.clock = clock

    async def create_unit(self, request: UnitRequest, user_id: str) -> Unit:
        now = self.clock()
        unit = Unit(
            id=str(uuid.uuid4()),
            number_of_rooms=request.number_of_rooms,
            accommodation_type=request.accommodation_type,
            floor=request.floor,
            base_price=request.base_price,
            total_price=calculate_total_price(request.base_price, self.markup_percent),
            description=request.description,
            available=True,
            created_at=now,
            updated_at=now,
        )

        async with self.uow.transaction() as session:
            await session.units.save(unit)
            await record_event(
                session,
                EventType.UNIT_CREATED,
                user_id,
                unit.id,
                f"Unit created with {unit.number_of_rooms} rooms "
                f"and total price {unit.total_price}",
            )

        await invalidate_available_count(self.cache)
        logger.info(f"Created unit {unit.id} with total price {unit.total_price}")
        return unit

    async def get_unit(self, unit_id: str) -> Unit:
        async with self.uow.transaction(read_only=True) as session:
            unit = await session.units.get(unit_id)
        if unit is None:
            raise NotFoundError("Unit", unit_id)
        return unit

    async def update_unit(self, unit_id: str, request: UnitRequest, user_id: str) -> Unit:
        now = self.clock()

        async with self.uow.transaction() as session:
            unit = await session.units.get(unit_id, for_update=True)
            if unit is None:
                raise NotFoundError("Unit", unit_id)

            unit.number_of_rooms = request.number_of_rooms
            unit.accommodation_type = request.accommodation_type
            unit.floor = request.floor
            unit.base_price = request.base_price
            unit.total_price = calculate_total_price(
                request.base_price, self.markup_percent
            )
            unit.description = request.description
            unit.updated_at = now
            await session.units.save(unit)

            await record_event(
                session,
                EventType.UNIT_UPDATED,
                user_id,
                unit.id,
                f"Unit updated with total price {unit.total_price}",
            )

        await invalidate_available_count(self.cache)
        logger.info(f"Updated unit {unit_id}")
        return unit

    async def delete_unit(self, unit_id: str, user_id: str) -> None:
        async with self.uow.transaction() as session:
            unit = await session.units.get(unit_id, for_update=True)
            if unit is None:
                raise NotFoundError("Unit", unit_id)

            active = await session.bookings.find_by_unit(unit_id, ACTIVE_BOOKING_STATUSES)
            if active:
                raise ConflictError(
                    f"Unit {unit_id} has {len(active)} active booking(s) and cannot be deleted"
                )

            await session.units.delete(unit_id)
            await record_event(
                session, EventType.UNIT_DELETED, user_id, unit_id, "Unit deleted"
            )

        await invalidate_available_count(self.cache)
        logger.info(f"Deleted unit {unit_id}")

    async def search_units(self, criteria: UnitSearchCriteria) -> Page[Unit]:
        logger.debug(f"Searching units with {criteria}")
        async with self.uow.transaction(read_only=True) as session:
            return await session.units.search(criteria)

    async def get_available_units_count(self) -> int:
        return await read_available_count(self.uow, self.cache)
