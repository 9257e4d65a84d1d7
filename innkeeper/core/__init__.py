"""Core domain logic for the Innkeeper booking system.

This package contains zero external dependencies and represents
the pure business logic of the application. Storage, caching and
the driving surfaces (CLI, HTTP API, scheduler) are handled by the
adapters package.
"""

from .errors import (
    BookingError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from .models import (
    AccommodationType,
    Booking,
    BookingStatus,
    Event,
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

__all__ = [
    "AccommodationType",
    "Booking",
    "BookingError",
    "BookingStatus",
    "ConflictError",
    "ErrorCode",
    "Event",
    "EventType",
    "ForbiddenError",
    "InvalidArgumentError",
    "InvalidStateError",
    "NotFoundError",
    "Page",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "SweepResult",
    "Unit",
    "UnitRequest",
    "UnitSearchCriteria",
]
