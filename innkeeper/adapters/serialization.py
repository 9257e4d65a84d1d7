"""Conversion between domain models and JSON-ready values.

Shared by the CLI and the HTTP API. Prices are rendered as exact decimal
strings and datetimes as ISO-8601 so no precision is lost on the way out.
The parse_* helpers turn user input into domain values and raise ValueError
for anything malformed, which both adapters report as INVALID_ARGUMENT.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, TypeVar

from innkeeper.core.models import (
    AccommodationType,
    Booking,
    Page,
    Payment,
    SweepResult,
    Unit,
    UnitRequest,
)

T = TypeVar("T")


def _iso(value: datetime) -> str:
    return value.isoformat()


def _money(value: Decimal) -> str:
    return str(value)


def unit_to_dict(unit: Unit) -> dict[str, Any]:
    return {
        "id": unit.id,
        "number_of_rooms": unit.number_of_rooms,
        "accommodation_type": unit.accommodation_type.value,
        "floor": unit.floor,
        "base_price": _money(unit.base_price),
        "total_price": _money(unit.total_price),
        "description": unit.description,
        "available": unit.available,
        "created_at": _iso(unit.created_at),
        "updated_at": _iso(unit.updated_at),
    }


def booking_to_dict(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "unit_id": booking.unit_id,
        "user_id": booking.user_id,
        "check_in": _iso(booking.check_in),
        "check_out": _iso(booking.check_out),
        "total_price": _money(booking.total_price),
        "status": booking.status.value,
        "payment_deadline": _iso(booking.payment_deadline),
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
    }


def payment_to_dict(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "booking_id": payment.booking_id,
        "amount": _money(payment.amount),
        "status": payment.status.value,
        "payment_method": payment.payment_method.value,
        "transaction_id": payment.transaction_id,
        "created_at": _iso(payment.created_at),
        "updated_at": _iso(payment.updated_at),
    }


def page_to_dict(page: Page[T], convert: Callable[[T], dict[str, Any]]) -> dict[str, Any]:
    """Render a page with each item converted by the given function."""
    return {
        "content": [convert(item) for item in page.items],
        "page": page.page,
        "size": page.size,
        "total_elements": page.total_elements,
        "total_pages": page.total_pages,
        "last": page.last,
    }


def sweep_result_to_dict(result: SweepResult) -> dict[str, Any]:
    return {
        "sweep": result.sweep,
        "selected": result.selected,
        "processed": result.processed,
        "skipped": result.skipped,
        "failed": result.failed,
        "timestamp": _iso(result.timestamp),
    }


def parse_datetime(value: str, field_name: str) -> datetime:
    """Parse an ISO-8601 timestamp from user input.

    Raises:
        ValueError: If the value is not ISO-8601 or carries no timezone.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field_name} must be an ISO-8601 timestamp, got {value!r}") from e
    if parsed.tzinfo is None:
        raise ValueError(f"{field_name} must include a timezone offset, got {value!r}")
    return parsed


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a finite decimal number from user input.

    Raises:
        ValueError: If the value is missing, not a number, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field_name} must be a decimal number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{field_name} must be a decimal number, got {value!r}") from e
    if not parsed.is_finite():
        raise ValueError(f"{field_name} must be a finite decimal number, got {value!r}")
    return parsed


def parse_int(value: Any, field_name: str) -> int:
    """Parse a whole number from user input (int or numeric string).

    Raises:
        ValueError: If the value is missing or not a whole number.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as e:
            raise ValueError(f"{field_name} must be an integer, got {value!r}") from e
    raise ValueError(f"{field_name} must be an integer, got {value!r}")


def parse_unit_request(data: dict[str, Any]) -> UnitRequest:
    """Build a UnitRequest from a JSON object.

    Raises:
        KeyError: If a required field is absent.
        ValueError: If a field is malformed.
    """
    description = data["description"]
    if not isinstance(description, str):
        raise ValueError(f"description must be a string, got {description!r}")
    return UnitRequest(
        number_of_rooms=parse_int(data["number_of_rooms"], "number_of_rooms"),
        accommodation_type=AccommodationType(data["accommodation_type"]),
        floor=parse_int(data["floor"], "floor"),
        base_price=parse_decimal(data["base_price"], "base_price"),
        description=description,
    )
