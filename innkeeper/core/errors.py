"""Domain errors raised by the booking core.

Every error carries an ErrorCode so driving adapters (CLI, HTTP API) can
translate it without inspecting message text. None of these are retried by
the core; they are raised to the caller as soon as they are detected.
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_STATE = "INVALID_STATE"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    CONFLICT = "CONFLICT"


class BookingError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(BookingError):
    """Raised when a unit, booking or payment does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(BookingError):
    """Raised when the acting user does not own the booking."""

    code = ErrorCode.FORBIDDEN


class InvalidStateError(BookingError):
    """Raised when an operation is not legal in the current status."""

    code = ErrorCode.INVALID_STATE


class InvalidArgumentError(BookingError):
    """Raised for malformed input such as impossible date ranges."""

    code = ErrorCode.INVALID_ARGUMENT


class ConflictError(BookingError):
    """Raised when a unit is unavailable or the requested dates overlap."""

    code = ErrorCode.CONFLICT


__all__ = [
    "BookingError",
    "ConflictError",
    "ErrorCode",
    "ForbiddenError",
    "InvalidArgumentError",
    "InvalidStateError",
    "NotFoundError",
]
