"""CLI command implementations for Innkeeper operations.

Provides human-initiated actions through a command-line interface.

This adapter maps CLI commands (units, bookings, payments, sweeps) to the
driving ports. It handles CLI-specific argument parsing, formatting and
error reporting: domain errors become {"status": "error", "code": ...}
results instead of exceptions.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from innkeeper.adapters.serialization import (
    booking_to_dict,
    page_to_dict,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_unit_request,
    payment_to_dict,
    sweep_result_to_dict,
    unit_to_dict,
)
from innkeeper.core.errors import BookingError, ErrorCode
from innkeeper.core.models import (
    AccommodationType,
    Booking,
    BookingStatus,
    PaymentMethod,
    UnitSearchCriteria,
)
from innkeeper.core.ports import BookingPort, PaymentPort, SweepPort, UnitPort

logger = logging.getLogger(__name__)


class CLICommandHandler:
    """Handles CLI commands by delegating to the driving ports."""

    def __init__(
        self,
        bookings: BookingPort,
        units: UnitPort,
        payments: PaymentPort,
        sweeps: SweepPort | None = None,
    ):
        """Initialize the CLI command handler.

        Args:
            bookings: BookingPort implementation.
            units: UnitPort implementation.
            payments: PaymentPort implementation.
            sweeps: SweepPort implementation for on-demand sweeps (optional).
        """
        self.bookings = bookings
        self.units = units
        self.payments = payments
        self.sweeps = sweeps

    async def _execute(
        self,
        operation: str,
        action: Callable[[], Awaitable[dict[str, Any]]],
        **context: Any,
    ) -> dict[str, Any]:
        """Run an action and turn expected failures into error results."""
        try:
            result = {"status": "success", "operation": operation}
            result.update(context)
            result.update(await action())
            return result
        except BookingError as e:
            logger.error(f"Failed to {operation}: {e}")
            return {
                "status": "error",
                "operation": operation,
                **context,
                "code": e.code.value,
                "message": e.message,
            }
        except (KeyError, TypeError, ValueError) as e:
            # Missing or malformed arguments
            message = f"Missing required parameter: {e.args[0]}" if isinstance(e, KeyError) else str(e)
            logger.error(f"Failed to {operation}: {message}")
            return {
                "status": "error",
                "operation": operation,
                **context,
                "code": ErrorCode.INVALID_ARGUMENT.value,
                "message": message,
            }

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    async def create_unit(self, user_id: str, args: dict[str, Any]) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            unit = await self.units.create_unit(parse_unit_request(args), user_id)
            return {"data": unit_to_dict(unit), "message": f"Unit {unit.id} created"}

        return await self._execute("create_unit", action)

    async def get_unit(self, unit_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            return {"data": unit_to_dict(await self.units.get_unit(unit_id))}

        return await self._execute("get_unit", action, unit_id=unit_id)

    async def update_unit(
        self, unit_id: str, user_id: str, args: dict[str, Any]
    ) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            unit = await self.units.update_unit(unit_id, parse_unit_request(args), user_id)
            return {"data": unit_to_dict(unit), "message": f"Unit {unit_id} updated"}

        return await self._execute("update_unit", action, unit_id=unit_id)

    async def delete_unit(self, unit_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            await self.units.delete_unit(unit_id, user_id)
            return {"message": f"Unit {unit_id} deleted"}

        return await self._execute("delete_unit", action, unit_id=unit_id)

    async def search_units(self, args: dict[str, Any]) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            criteria = UnitSearchCriteria(
                number_of_rooms=(
                    parse_int(args["number_of_rooms"], "number_of_rooms")
                    if "number_of_rooms" in args
                    else None
                ),
                accommodation_type=(
                    AccommodationType(args["accommodation_type"])
                    if "accommodation_type" in args
                    else None
                ),
                floor=parse_int(args["floor"], "floor") if "floor" in args else None,
                min_price=(
                    parse_decimal(args["min_price"], "min_price") if "min_price" in args else None
                ),
                max_price=(
                    parse_decimal(args["max_price"], "max_price") if "max_price" in args else None
                ),
                check_in=(
                    parse_datetime(args["check_in"], "check_in") if "check_in" in args else None
                ),
                check_out=(
                    parse_datetime(args["check_out"], "check_out")
                    if "check_out" in args
                    else None
                ),
                page=parse_int(args.get("page", 0), "page"),
                size=parse_int(args.get("size", 10), "size"),
            )
            page = await self.units.search_units(criteria)
            return {"data": page_to_dict(page, unit_to_dict)}

        return await self._execute("search_units", action)

    async def available_count(self) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            return {"data": {"available_units": await self.units.get_available_units_count()}}

        return await self._execute("available_count", action)

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def create_booking(
        self, unit_id: str, check_in: str, check_out: str, user_id: str
    ) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            booking = await self.bookings.create_booking(
                unit_id,
                parse_datetime(check_in, "check_in"),
                parse_datetime(check_out, "check_out"),
                user_id,
            )
            return {
                "booking_id": booking.id,
                "data": booking_to_dict(booking),
                "message": (
                    f"Booking {booking.id} created, pay before "
                    f"{booking.payment_deadline.isoformat()}"
                ),
            }

        return await self._execute("create_booking", action, unit_id=unit_id)

    async def get_booking(self, booking_id: str, output_format: str = "json") -> dict[str, Any]:
        """Retrieve booking details via CLI.

        Args:
            booking_id: UUID of the booking.
            output_format: Output format ('json', 'text'). Default 'json'.
        """
        if output_format not in ("json", "text"):
            return {
                "status": "error",
                "operation": "get_booking",
                "message": f"Unsupported format: {output_format}",
            }

        async def action() -> dict[str, Any]:
            booking = await self.bookings.get_booking(booking_id)
            if output_format == "text":
                return {"data": self._format_booking_as_text(booking)}
            return {"data": booking_to_dict(booking)}

        return await self._execute("get_booking", action, booking_id=booking_id)

    async def confirm_booking(self, booking_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            booking = await self.bookings.confirm_booking(booking_id, user_id)
            return {"data": booking_to_dict(booking), "message": f"Booking {booking_id} confirmed"}

        return await self._execute("confirm_booking", action, booking_id=booking_id)

    async def cancel_booking(self, booking_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            booking = await self.bookings.cancel_booking(booking_id, user_id)
            return {"data": booking_to_dict(booking), "message": f"Booking {booking_id} cancelled"}

        return await self._execute("cancel_booking", action, booking_id=booking_id)

    async def list_bookings(self, user_id: str, page: Any = 0, size: Any = 10) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            result = await self.bookings.get_user_bookings(
                user_id, parse_int(page, "page"), parse_int(size, "size")
            )
            return {"data": page_to_dict(result, booking_to_dict)}

        return await self._execute("list_bookings", action, user_id=user_id)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        booking_id: str,
        amount: Any,
        payment_method: str,
        user_id: str,
        transaction_id: str | None = None,
    ) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            payment = await self.payments.create_payment(
                booking_id,
                parse_decimal(amount, "amount"),
                PaymentMethod(payment_method),
                user_id,
                transaction_id,
            )
            return {"payment_id": payment.id, "data": payment_to_dict(payment)}

        return await self._execute("create_payment", action, booking_id=booking_id)

    async def process_payment(self, payment_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            payment = await self.payments.process_payment(payment_id, user_id)
            return {
                "data": payment_to_dict(payment),
                "message": f"Payment {payment_id} completed, booking {payment.booking_id} confirmed",
            }

        return await self._execute("process_payment", action, payment_id=payment_id)

    async def refund_payment(self, payment_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            payment = await self.payments.refund_payment(payment_id, user_id)
            return {"data": payment_to_dict(payment), "message": f"Payment {payment_id} refunded"}

        return await self._execute("refund_payment", action, payment_id=payment_id)

    async def fail_payment(self, payment_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            payment = await self.payments.fail_payment(payment_id, user_id)
            return {"data": payment_to_dict(payment), "message": f"Payment {payment_id} failed"}

        return await self._execute("fail_payment", action, payment_id=payment_id)

    async def cancel_pending_payments(self, booking_id: str, user_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            count = await self.payments.cancel_pending_payments(booking_id, user_id)
            return {"cancelled": count, "message": f"Cancelled {count} pending payment(s)"}

        return await self._execute("cancel_payments", action, booking_id=booking_id)

    async def list_payments(self, booking_id: str) -> dict[str, Any]:
        async def action() -> dict[str, Any]:
            payments = await self.payments.get_payments_for_booking(booking_id)
            return {"data": [payment_to_dict(p) for p in payments]}

        return await self._execute("list_payments", action, booking_id=booking_id)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_sweeps(self) -> dict[str, Any]:
        """Run the expiry and completion sweeps once."""
        if self.sweeps is None:
            return {
                "status": "error",
                "operation": "sweep",
                "message": "Sweeps are not available in this mode",
            }

        expiry = await self.sweeps.process_expired_bookings()
        completion = await self.sweeps.process_completed_bookings()
        return {
            "status": "success",
            "operation": "sweep",
            "data": {
                "expiry": sweep_result_to_dict(expiry),
                "completion": sweep_result_to_dict(completion),
            },
        }

    def _format_booking_as_text(self, booking: Booking) -> str:
        """Format booking details as human-readable text."""
        lines = [
            f"Booking ID: {booking.id}",
            f"Unit: {booking.unit_id}",
            f"Guest: {booking.user_id}",
            "",
            f"Status: {booking.status.value}",
            f"Check-in: {booking.check_in.isoformat()}",
            f"Check-out: {booking.check_out.isoformat()}",
            f"Total Price: {booking.total_price}",
        ]
        if booking.status == BookingStatus.PENDING_PAYMENT:
            lines.append(f"Payment Deadline: {booking.payment_deadline.isoformat()}")
        return "\n".join(lines)


async def run_command(
    handler: CLICommandHandler,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Run a CLI command.

    Entry point for executing CLI commands. Maps command names to handler methods.

    Args:
        handler: CLICommandHandler instance.
        command: Command name (see COMMANDS).
        args: Dictionary of command arguments.

    Returns:
        Dictionary with command result.

    Raises:
        ValueError: If command is not recognized or a required argument is missing.
    """
    if command not in COMMANDS:
        raise ValueError(f"Unknown command: {command}. Use 'help' for available commands.")

    required, dispatch = COMMANDS[command]
    for name in required:
        if name not in args:
            raise ValueError(f"Missing required parameter: {name}")
    return await dispatch(handler, args)


CommandDispatch = Callable[[CLICommandHandler, dict[str, Any]], Awaitable[dict[str, Any]]]

COMMANDS: dict[str, tuple[tuple[str, ...], CommandDispatch]] = {
    "create-unit": (
        ("user_id", "number_of_rooms", "accommodation_type", "floor", "base_price", "description"),
        lambda h, a: h.create_unit(a["user_id"], a),
    ),
    "unit": (("unit_id",), lambda h, a: h.get_unit(a["unit_id"])),
    "update-unit": (
        ("unit_id", "user_id", "number_of_rooms", "accommodation_type", "floor",
         "base_price", "description"),
        lambda h, a: h.update_unit(a["unit_id"], a["user_id"], a),
    ),
    "delete-unit": (
        ("unit_id", "user_id"),
        lambda h, a: h.delete_unit(a["unit_id"], a["user_id"]),
    ),
    "search": ((), lambda h, a: h.search_units(a)),
    "available": ((), lambda h, a: h.available_count()),
    "book": (
        ("unit_id", "check_in", "check_out", "user_id"),
        lambda h, a: h.create_booking(a["unit_id"], a["check_in"], a["check_out"], a["user_id"]),
    ),
    "booking": (
        ("booking_id",),
        lambda h, a: h.get_booking(a["booking_id"], a.get("format", "json")),
    ),
    "confirm": (
        ("booking_id", "user_id"),
        lambda h, a: h.confirm_booking(a["booking_id"], a["user_id"]),
    ),
    "cancel": (
        ("booking_id", "user_id"),
        lambda h, a: h.cancel_booking(a["booking_id"], a["user_id"]),
    ),
    "bookings": (
        ("user_id",),
        lambda h, a: h.list_bookings(a["user_id"], a.get("page", 0), a.get("size", 10)),
    ),
    "pay": (
        ("booking_id", "amount", "payment_method", "user_id"),
        lambda h, a: h.create_payment(
            a["booking_id"], a["amount"], a["payment_method"], a["user_id"], a.get("transaction_id")
        ),
    ),
    "process-payment": (
        ("payment_id", "user_id"),
        lambda h, a: h.process_payment(a["payment_id"], a["user_id"]),
    ),
    "refund": (
        ("payment_id", "user_id"),
        lambda h, a: h.refund_payment(a["payment_id"], a["user_id"]),
    ),
    "fail-payment": (
        ("payment_id", "user_id"),
        lambda h, a: h.fail_payment(a["payment_id"], a["user_id"]),
    ),
    "cancel-payments": (
        ("booking_id", "user_id"),
        lambda h, a: h.cancel_pending_payments(a["booking_id"], a["user_id"]),
    ),
    "payments": (("booking_id",), lambda h, a: h.list_payments(a["booking_id"])),
    "sweep": ((), lambda h, a: h.run_sweeps()),
}
