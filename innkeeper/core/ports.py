"""Port interfaces for the Innkeeper booking system.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - UnitStorePort: Persist units and their availability flag
   - BookingStorePort: Persist and query bookings
   - PaymentStorePort: Persist payment records
   - EventSinkPort: Append-only audit log
   - UnitOfWorkPort: One transaction spanning all of the stores above
   - AvailabilityCachePort: Derived count of available units

2. **Driving Ports** (adapters/external systems call into core)
   - BookingPort: Create, confirm, cancel and look up bookings
   - SweepPort: Time-driven expiry and completion sweeps
   - UnitPort: Unit management and search
   - PaymentPort: Payment records and implicit confirmation
   - CacheRecoveryPort: Periodic recount of available units
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from decimal import Decimal

from .models import (
    Booking,
    BookingStatus,
    EventType,
    Page,
    Payment,
    PaymentMethod,
    PaymentStatus,
    SweepResult,
    Unit,
    UnitRequest,
    UnitSearchCriteria,
)

# Single injectable "now" accessor. Must return timezone-aware datetimes.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class UnitStorePort(ABC):
    """Port for persisting units.

    The unit row is the only resource contended by concurrent booking
    creators, so implementations must honour for_update: the row (or the
    database) stays exclusively held until the enclosing transaction ends.
    """

    @abstractmethod
    async def get(self, unit_id: str, for_update: bool = False) -> Unit | None:
        """Retrieve a unit by ID.

        Args:
            unit_id: UUID of the unit.
            for_update: Lock the row against concurrent writers until the
                surrounding transaction commits or rolls back.

        Returns:
            Unit if found, None otherwise.
        """

    @abstractmethod
    async def save(self, unit: Unit) -> Unit:
        """Insert or update a unit."""

    @abstractmethod
    async def delete(self, unit_id: str) -> None:
        """Remove a unit. Callers guarantee no active booking references it."""

    @abstractmethod
    async def count_available(self) -> int:
        """Count units whose available flag is set."""

    @abstractmethod
    async def search(self, criteria: UnitSearchCriteria) -> Page[Unit]:
        """Search available units.

        Only units with available=True are returned. When the criteria carry
        both dates, units holding an active booking that overlaps the range
        (inclusive boundaries) are excluded. Ordered newest first.
        """


class BookingStorePort(ABC):
    """Port for persisting and querying bookings."""

    @abstractmethod
    async def get(self, booking_id: str, for_update: bool = False) -> Booking | None:
        """Retrieve a booking by ID, optionally locking its row."""

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Insert or update a booking."""

    @abstractmethod
    async def find_overlapping(
        self,
        unit_id: str,
        statuses: Sequence[BookingStatus],
        check_in: datetime,
        check_out: datetime,
    ) -> list[Booking]:
        """Bookings on a unit whose range overlaps the given one.

        Overlap is inclusive on both ends:
        existing.check_in <= check_out AND existing.check_out >= check_in.
        """

    @abstractmethod
    async def find_by_status_and_deadline_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        """Bookings in status whose payment_deadline is strictly before instant."""

    @abstractmethod
    async def find_by_status_and_checkout_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        """Bookings in status whose check_out is at or before instant."""

    @abstractmethod
    async def find_by_user(self, user_id: str, page: int, size: int) -> Page[Booking]:
        """One page of a user's bookings, newest first."""

    @abstractmethod
    async def find_by_unit(
        self, unit_id: str, statuses: Sequence[BookingStatus]
    ) -> list[Booking]:
        """All bookings on a unit in any of the given statuses."""


class PaymentStorePort(ABC):
    """Port for persisting payment records."""

    @abstractmethod
    async def get(self, payment_id: str, for_update: bool = False) -> Payment | None:
        """Retrieve a payment by ID."""

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        """Insert or update a payment."""

    @abstractmethod
    async def find_by_booking(
        self, booking_id: str, status: PaymentStatus | None = None
    ) -> list[Payment]:
        """Payments for a booking, oldest first, optionally filtered by status."""


class EventSinkPort(ABC):
    """Port for the append-only audit log.

    The core never reads events back. Implementations taking part in a
    transaction must isolate their own failure (e.g. with a savepoint) so
    that the core can log it and still commit the state change.
    """

    @abstractmethod
    async def record(
        self,
        event_type: EventType,
        user_id: str,
        entity_id: str,
        description: str,
    ) -> None:
        """Append one event.

        Raises:
            Exception: If the event could not be written. The core logs and
                swallows it.
        """


class StoreSession(ABC):
    """The stores bound to a single open transaction."""

    units: UnitStorePort
    bookings: BookingStorePort
    payments: PaymentStorePort
    events: EventSinkPort


class UnitOfWorkPort(ABC):
    """Port for opening transactions across all stores.

    Usage:
        async with uow.transaction() as session:
            unit = await session.units.get(unit_id, for_update=True)
            ...
            await session.bookings.save(booking)
        # committed here; any exception rolls everything back
    """

    @abstractmethod
    def transaction(
        self, read_only: bool = False
    ) -> AbstractAsyncContextManager[StoreSession]:
        """Open a transaction.

        Args:
            read_only: Hint that no writes will be issued, letting adapters
                skip write locks.

        Returns:
            Async context manager yielding a StoreSession. Commits on normal
            exit, rolls back if the block raises.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections."""


class AvailabilityCachePort(ABC):
    """Port for the derived available-unit count.

    The cache is never authoritative. Implementations may raise when the
    backend is unreachable; the core decides whether that matters.
    """

    @abstractmethod
    async def get(self, key: str) -> int | None:
        """Cached value, or None on a miss."""

    @abstractmethod
    async def put(self, key: str, value: int) -> None:
        """Overwrite the cached value."""

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """Drop the cached value so the next read recomputes it."""

    @abstractmethod
    async def ping(self) -> bool:
        """Whether the cache backend is reachable. Never raises."""

    @abstractmethod
    async def close(self) -> None:
        """Release client resources."""


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class BookingPort(ABC):
    """Port for request-driven booking operations.

    Driving port: the CLI and the HTTP API call these methods on behalf of
    an already-identified user.
    """

    @abstractmethod
    async def create_booking(
        self, unit_id: str, check_in: datetime, check_out: datetime, user_id: str
    ) -> Booking:
        """Hold a unit for a date range pending payment.

        Raises:
            InvalidArgumentError: Dates in the past or check_out <= check_in.
            NotFoundError: Unit does not exist.
            ConflictError: Unit unavailable or dates overlap an active booking.
        """

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Booking:
        """Retrieve a booking.

        Raises:
            NotFoundError: Booking does not exist.
        """

    @abstractmethod
    async def confirm_booking(self, booking_id: str, user_id: str) -> Booking:
        """Confirm a pending booking. The unit stays held.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError
        """

    @abstractmethod
    async def cancel_booking(self, booking_id: str, user_id: str) -> Booking:
        """Cancel a pending or confirmed booking and release its unit.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError
        """

    @abstractmethod
    async def get_user_bookings(
        self, user_id: str, page: int = 0, size: int = 10
    ) -> Page[Booking]:
        """One page of the user's bookings, newest first."""


class SweepPort(ABC):
    """Port for caller-less, time-driven transitions.

    Driving port: the scheduler invokes these on fixed intervals.
    """

    @abstractmethod
    async def process_expired_bookings(self) -> SweepResult:
        """Cancel pending bookings whose payment deadline has passed."""

    @abstractmethod
    async def process_completed_bookings(self) -> SweepResult:
        """Complete confirmed bookings whose check-out has passed."""


class UnitPort(ABC):
    """Port for unit management."""

    @abstractmethod
    async def create_unit(self, request: UnitRequest, user_id: str) -> Unit:
        """Create an available unit priced with the system markup."""

    @abstractmethod
    async def get_unit(self, unit_id: str) -> Unit:
        """Retrieve a unit.

        Raises:
            NotFoundError: Unit does not exist.
        """

    @abstractmethod
    async def update_unit(self, unit_id: str, request: UnitRequest, user_id: str) -> Unit:
        """Replace a unit's descriptive fields and re-price it."""

    @abstractmethod
    async def delete_unit(self, unit_id: str, user_id: str) -> None:
        """Delete a unit that no active booking references.

        Raises:
            NotFoundError, ConflictError
        """

    @abstractmethod
    async def search_units(self, criteria: UnitSearchCriteria) -> Page[Unit]:
        """Search available units."""

    @abstractmethod
    async def get_available_units_count(self) -> int:
        """Available-unit count, served from the cache when possible."""


class PaymentPort(ABC):
    """Port for payment records."""

    @abstractmethod
    async def create_payment(
        self,
        booking_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        user_id: str,
        transaction_id: str | None = None,
    ) -> Payment:
        """Record a pending payment for a pending booking."""

    @abstractmethod
    async def get_payment(self, payment_id: str) -> Payment:
        """Retrieve a payment."""

    @abstractmethod
    async def get_payments_for_booking(self, booking_id: str) -> list[Payment]:
        """All payments for a booking, oldest first."""

    @abstractmethod
    async def process_payment(self, payment_id: str, user_id: str) -> Payment:
        """Complete a pending payment and confirm its booking."""

    @abstractmethod
    async def refund_payment(self, payment_id: str, user_id: str) -> Payment:
        """Refund a completed payment."""

    @abstractmethod
    async def fail_payment(self, payment_id: str, user_id: str) -> Payment:
        """Mark a pending payment as failed."""

    @abstractmethod
    async def cancel_pending_payments(self, booking_id: str, user_id: str) -> int:
        """Cancel every pending payment of a booking. Returns the count."""


class CacheRecoveryPort(ABC):
    """Port for healing the available-unit cache."""

    @abstractmethod
    async def recover_cache(self) -> int | None:
        """Recount available units and overwrite the cache.

        Returns:
            The count written, or None if the cycle was skipped. Never raises.
        """
