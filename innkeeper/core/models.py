"""Domain models for the Innkeeper booking system.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain. Prices are
Decimal throughout; datetimes are timezone-aware.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar

from .errors import InvalidArgumentError, InvalidStateError

T = TypeVar("T")


class AccommodationType(Enum):
    """Category of a bookable unit."""

    HOME = "HOME"
    FLAT = "FLAT"
    APARTMENTS = "APARTMENTS"


class BookingStatus(Enum):
    """Lifecycle states for a booking.

    State transitions follow a directed workflow:
    - PENDING_PAYMENT: initial state, the unit is held until the payment deadline
    - CONFIRMED: paid or explicitly confirmed, the unit stays held through the stay
    - CANCELLED: terminal, reached by explicit cancel or by the expiry sweep
    - COMPLETED: terminal, reached by the completion sweep after check-out
    """

    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# Statuses that hold a unit and therefore block new bookings on it.
ACTIVE_BOOKING_STATUSES: tuple[BookingStatus, ...] = (
    BookingStatus.CONFIRMED,
    BookingStatus.PENDING_PAYMENT,
)


class EventType(Enum):
    """Audit event types recorded in the event sink."""

    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    PAYMENT_STATUS_UPDATED = "PAYMENT_STATUS_UPDATED"
    UNIT_CREATED = "UNIT_CREATED"
    UNIT_UPDATED = "UNIT_UPDATED"
    UNIT_DELETED = "UNIT_DELETED"


class PaymentStatus(Enum):
    """Lifecycle states for a payment record."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class PaymentMethod(Enum):
    """How the guest intends to pay."""

    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    PAYPAL = "PAYPAL"
    CRYPTO = "CRYPTO"


@dataclass
class Unit:
    """A bookable accommodation unit.

    The available flag is denormalized: it must be False exactly while a
    PENDING_PAYMENT or CONFIRMED booking holds the unit. Only the booking
    lifecycle flips it.
    """

    id: str  # UUID
    number_of_rooms: int
    accommodation_type: AccommodationType
    floor: int
    base_price: Decimal
    total_price: Decimal  # base price plus system markup
    description: str
    available: bool
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate unit invariants on creation or deserialization."""
        if self.number_of_rooms < 1:
            raise ValueError(
                f"number_of_rooms must be >= 1, got {self.number_of_rooms}"
            )
        if self.base_price < 0:
            raise ValueError(f"base_price must be non-negative, got {self.base_price}")

    def mark_unavailable(self, now: datetime) -> None:
        """Hold the unit for a new booking."""
        self.available = False
        self.updated_at = now

    def mark_available(self, now: datetime) -> None:
        """Release the unit after its booking left the active states."""
        self.available = True
        self.updated_at = now


@dataclass
class Booking:
    """A reservation of a unit for a date range.

    State Transitions:
        - PENDING_PAYMENT → CONFIRMED (confirm)
        - PENDING_PAYMENT → CANCELLED (cancel, expire)
        - CONFIRMED → CANCELLED (cancel)
        - CONFIRMED → COMPLETED (complete)

    CANCELLED and COMPLETED are terminal. total_price is frozen at creation
    and never recomputed.
    """

    id: str  # UUID
    unit_id: str
    user_id: str
    check_in: datetime
    check_out: datetime
    total_price: Decimal
    status: BookingStatus
    payment_deadline: datetime
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate booking invariants on creation or deserialization."""
        if self.check_out <= self.check_in:
            raise ValueError(
                f"check_out ({self.check_out}) must be after check_in ({self.check_in})"
            )

    @property
    def is_active(self) -> bool:
        """Whether this booking currently holds its unit."""
        return self.status in ACTIVE_BOOKING_STATUSES

    def overlaps(self, check_in: datetime, check_out: datetime) -> bool:
        """Inclusive overlap: sharing a boundary instant counts as overlapping."""
        return self.check_in <= check_out and self.check_out >= check_in

    def is_payment_overdue(self, now: datetime) -> bool:
        """Whether the expiry sweep should cancel this booking."""
        return (
            self.status == BookingStatus.PENDING_PAYMENT
            and self.payment_deadline < now
        )

    def is_stay_over(self, now: datetime) -> bool:
        """Whether the completion sweep should complete this booking."""
        return self.status == BookingStatus.CONFIRMED and self.check_out <= now

    def confirm(self, now: datetime) -> None:
        """Transition booking to confirmed status."""
        if self.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidStateError(
                f"Booking {self.id} is not pending payment (status: {self.status.value})"
            )
        self.status = BookingStatus.CONFIRMED
        self.updated_at = now

    def cancel(self, now: datetime) -> None:
        """Transition booking to cancelled status.

        Repeated cancellation is rejected rather than treated as a no-op.
        """
        if self.status == BookingStatus.CANCELLED:
            raise InvalidStateError(f"Booking {self.id} is already cancelled")
        if self.status == BookingStatus.COMPLETED:
            raise InvalidStateError(f"Booking {self.id} is already completed")
        self.status = BookingStatus.CANCELLED
        self.updated_at = now

    def expire(self, now: datetime) -> None:
        """Cancel a booking whose payment deadline has passed."""
        if self.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidStateError(
                f"Only pending bookings can expire, booking {self.id} is {self.status.value}"
            )
        self.status = BookingStatus.CANCELLED
        self.updated_at = now

    def complete(self, now: datetime) -> None:
        """Transition a confirmed booking to completed after check-out."""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidStateError(
                f"Only confirmed bookings can complete, booking {self.id} is {self.status.value}"
            )
        self.status = BookingStatus.COMPLETED
        self.updated_at = now


@dataclass
class Payment:
    """A payment attempt recorded against a booking.

    No money moves here: processing a payment is a status transition.
    """

    id: str  # UUID
    booking_id: str
    amount: Decimal
    status: PaymentStatus
    payment_method: PaymentMethod
    transaction_id: str | None
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate payment invariants on creation or deserialization."""
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")

    def _move(self, expected: PaymentStatus, target: PaymentStatus, now: datetime) -> None:
        if self.status != expected:
            raise InvalidStateError(
                f"Payment {self.id} is not {expected.value.lower()} (status: {self.status.value})"
            )
        self.status = target
        self.updated_at = now

    def complete(self, now: datetime) -> None:
        self._move(PaymentStatus.PENDING, PaymentStatus.COMPLETED, now)

    def fail(self, now: datetime) -> None:
        self._move(PaymentStatus.PENDING, PaymentStatus.FAILED, now)

    def cancel(self, now: datetime) -> None:
        self._move(PaymentStatus.PENDING, PaymentStatus.CANCELLED, now)

    def refund(self, now: datetime) -> None:
        self._move(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, now)


@dataclass(frozen=True)
class Event:
    """An immutable audit record of a domain action."""

    id: str  # UUID
    event_type: EventType
    user_id: str
    entity_id: str
    description: str
    created_at: datetime


@dataclass(frozen=True)
class UnitRequest:
    """Descriptive fields for creating or updating a unit."""

    number_of_rooms: int
    accommodation_type: AccommodationType
    floor: int
    base_price: Decimal
    description: str

    def __post_init__(self) -> None:
        """Validate request fields before they reach the store."""
        if self.number_of_rooms < 1:
            raise InvalidArgumentError("number_of_rooms must be at least 1")
        if not self.base_price.is_finite() or self.base_price < 0:
            raise InvalidArgumentError("base_price must be a non-negative finite number")
        if not self.description or not self.description.strip():
            raise InvalidArgumentError("description must be a non-empty string")


@dataclass(frozen=True)
class UnitSearchCriteria:
    """Optional filters for unit search. None means "any"."""

    number_of_rooms: int | None = None
    accommodation_type: AccommodationType | None = None
    floor: int | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    check_in: datetime | None = None
    check_out: datetime | None = None
    page: int = 0
    size: int = 10

    def __post_init__(self) -> None:
        """Validate pagination and price bounds."""
        if self.page < 0:
            raise InvalidArgumentError(f"page must be >= 0, got {self.page}")
        if self.size < 1:
            raise InvalidArgumentError(f"size must be >= 1, got {self.size}")
        for name, price in (("min_price", self.min_price), ("max_price", self.max_price)):
            if price is not None and not price.is_finite():
                raise InvalidArgumentError(f"{name} must be a finite number, got {price}")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise InvalidArgumentError("min_price cannot exceed max_price")
        if (
            self.check_in is not None
            and self.check_out is not None
            and self.check_out <= self.check_in
        ):
            raise InvalidArgumentError("check_out must be after check_in")

    @property
    def has_date_range(self) -> bool:
        return self.check_in is not None and self.check_out is not None


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a larger ordered result set."""

    items: tuple[T, ...]
    page: int
    size: int
    total_elements: int
    total_pages: int
    last: bool

    @classmethod
    def of(cls, items: Sequence[T], page: int, size: int, total_elements: int) -> "Page[T]":
        """Build a page, deriving total_pages and last from the counts."""
        total_pages = math.ceil(total_elements / size) if size > 0 else 0
        return cls(
            items=tuple(items),
            page=page,
            size=size,
            total_elements=total_elements,
            total_pages=total_pages,
            last=page + 1 >= total_pages,
        )


@dataclass(frozen=True)
class SweepResult:
    """Summary of one sweep execution."""

    sweep: str  # "expiry" or "completion"
    selected: int
    processed: int
    timestamp: datetime
    skipped: int = 0  # no longer eligible when re-read under lock
    failed: int = 0  # raised during their own unit of work
