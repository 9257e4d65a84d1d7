"""Request handlers for the Innkeeper JSON API.

Maps HTTP routes onto the driving ports and translates domain errors into
status codes. Transport concerns (sockets, auth, body limits) live in
http_server.py; this module only sees parsed requests.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
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
    PaymentMethod,
    UnitSearchCriteria,
)
from innkeeper.core.ports import BookingPort, PaymentPort, SweepPort, UnitPort

logger = logging.getLogger(__name__)

HTTP_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.CONFLICT: 409,
}

ApiResponse = tuple[int, dict[str, Any]]


class MissingUserError(Exception):
    """The route acts on behalf of a user but no X-User-Id was sent."""


@dataclass(frozen=True)
class ApiRequest:
    """A parsed HTTP request."""

    method: str
    path: str
    query: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None

    def require_user(self) -> str:
        if not self.user_id:
            raise MissingUserError("Missing X-User-Id header")
        return self.user_id


Handler = Callable[..., Awaitable[ApiResponse]]


def _error(status: int, code: str, message: str) -> ApiResponse:
    return status, {"status": "error", "code": code, "message": message}


class ApiHandlers:
    """Routes API requests to the core services."""

    def __init__(
        self,
        bookings: BookingPort,
        units: UnitPort,
        payments: PaymentPort,
        sweeps: SweepPort | None = None,
    ):
        self.bookings = bookings
        self.units = units
        self.payments = payments
        self.sweeps = sweeps

        # Ordered: literal segments must precede the {id} captures they shadow
        self._routes: list[tuple[str, re.Pattern[str], Handler]] = [
            ("GET", re.compile(r"^/api/units/available-count$"), self._available_count),
            ("GET", re.compile(r"^/api/units$"), self._search_units),
            ("POST", re.compile(r"^/api/units$"), self._create_unit),
            ("GET", re.compile(r"^/api/units/([^/]+)$"), self._get_unit),
            ("PUT", re.compile(r"^/api/units/([^/]+)$"), self._update_unit),
            ("DELETE", re.compile(r"^/api/units/([^/]+)$"), self._delete_unit),
            ("GET", re.compile(r"^/api/bookings$"), self._list_bookings),
            ("POST", re.compile(r"^/api/bookings$"), self._create_booking),
            ("GET", re.compile(r"^/api/bookings/([^/]+)$"), self._get_booking),
            ("POST", re.compile(r"^/api/bookings/([^/]+)/confirm$"), self._confirm_booking),
            ("POST", re.compile(r"^/api/bookings/([^/]+)/cancel$"), self._cancel_booking),
            ("GET", re.compile(r"^/api/bookings/([^/]+)/payments$"), self._list_payments),
            (
                "POST",
                re.compile(r"^/api/bookings/([^/]+)/payments/cancel$"),
                self._cancel_pending_payments,
            ),
            ("POST", re.compile(r"^/api/payments$"), self._create_payment),
            ("GET", re.compile(r"^/api/payments/([^/]+)$"), self._get_payment),
            ("POST", re.compile(r"^/api/payments/([^/]+)/process$"), self._process_payment),
            ("POST", re.compile(r"^/api/payments/([^/]+)/refund$"), self._refund_payment),
            ("POST", re.compile(r"^/api/payments/([^/]+)/fail$"), self._fail_payment),
            ("POST", re.compile(r"^/api/sweeps$"), self._run_sweeps),
        ]

    async def handle(self, request: ApiRequest) -> ApiResponse:
        """Dispatch a request and map failures to HTTP statuses.

        Unexpected exceptions propagate so the transport can log them and
        answer 500 without leaking details.
        """
        path_matched = False
        for method, pattern, handler in self._routes:
            match = pattern.match(request.path)
            if match is None:
                continue
            path_matched = True
            if method != request.method:
                continue

            try:
                return await handler(request, *match.groups())
            except BookingError as e:
                logger.info(f"{request.method} {request.path} rejected: {e}")
                return _error(HTTP_STATUS_BY_CODE[e.code], e.code.value, e.message)
            except MissingUserError as e:
                return _error(401, "UNAUTHENTICATED", str(e))
            except KeyError as e:
                return _error(
                    400, ErrorCode.INVALID_ARGUMENT.value, f"Missing required field: {e.args[0]}"
                )
            except (TypeError, ValueError) as e:
                return _error(400, ErrorCode.INVALID_ARGUMENT.value, str(e))

        if path_matched:
            return _error(405, "METHOD_NOT_ALLOWED", f"{request.method} not allowed")
        return _error(404, "NOT_FOUND", f"No route for {request.path}")

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    async def _create_unit(self, request: ApiRequest) -> ApiResponse:
        user_id = request.require_user()
        unit = await self.units.create_unit(parse_unit_request(request.body), user_id)
        return 201, unit_to_dict(unit)

    async def _get_unit(self, request: ApiRequest, unit_id: str) -> ApiResponse:
        return 200, unit_to_dict(await self.units.get_unit(unit_id))

    async def _update_unit(self, request: ApiRequest, unit_id: str) -> ApiResponse:
        user_id = request.require_user()
        unit = await self.units.update_unit(unit_id, parse_unit_request(request.body), user_id)
        return 200, unit_to_dict(unit)

    async def _delete_unit(self, request: ApiRequest, unit_id: str) -> ApiResponse:
        user_id = request.require_user()
        await self.units.delete_unit(unit_id, user_id)
        return 200, {"status": "deleted", "id": unit_id}

    async def _search_units(self, request: ApiRequest) -> ApiResponse:
        q = request.query
        criteria = UnitSearchCriteria(
            number_of_rooms=(
                parse_int(q["number_of_rooms"], "number_of_rooms") if "number_of_rooms" in q else None
            ),
            accommodation_type=(
                AccommodationType(q["accommodation_type"]) if "accommodation_type" in q else None
            ),
            floor=parse_int(q["floor"], "floor") if "floor" in q else None,
            min_price=parse_decimal(q["min_price"], "min_price") if "min_price" in q else None,
            max_price=parse_decimal(q["max_price"], "max_price") if "max_price" in q else None,
            check_in=parse_datetime(q["check_in"], "check_in") if "check_in" in q else None,
            check_out=parse_datetime(q["check_out"], "check_out") if "check_out" in q else None,
            page=parse_int(q.get("page", 0), "page"),
            size=parse_int(q.get("size", 10), "size"),
        )
        page = await self.units.search_units(criteria)
        return 200, page_to_dict(page, unit_to_dict)

    async def _available_count(self, request: ApiRequest) -> ApiResponse:
        return 200, {"available_units": await self.units.get_available_units_count()}

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def _create_booking(self, request: ApiRequest) -> ApiResponse:
        user_id = request.require_user()
        body = request.body
        booking = await self.bookings.create_booking(
            str(body["unit_id"]),
            parse_datetime(body["check_in"], "check_in"),
            parse_datetime(body["check_out"], "check_out"),
            user_id,
        )
        return 201, booking_to_dict(booking)

    async def _get_booking(self, request: ApiRequest, booking_id: str) -> ApiResponse:
        return 200, booking_to_dict(await self.bookings.get_booking(booking_id))

    async def _confirm_booking(self, request: ApiRequest, booking_id: str) -> ApiResponse:
        user_id = request.require_user()
        return 200, booking_to_dict(await self.bookings.confirm_booking(booking_id, user_id))

    async def _cancel_booking(self, request: ApiRequest, booking_id: str) -> ApiResponse:
        user_id = request.require_user()
        return 200, booking_to_dict(await self.bookings.cancel_booking(booking_id, user_id))

    async def _list_bookings(self, request: ApiRequest) -> ApiResponse:
        user_id = request.require_user()
        page = await self.bookings.get_user_bookings(
            user_id,
            parse_int(request.query.get("page", 0), "page"),
            parse_int(request.query.get("size", 10), "size"),
        )
        return 200, page_to_dict(page, booking_to_dict)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def _create_payment(self, request: ApiRequest) -> ApiResponse:
        user_id = request.require_user()
        body = request.body
        payment = await self.payments.create_payment(
            str(body["booking_id"]),
            parse_decimal(body["amount"], "amount"),
            PaymentMethod(body["payment_method"]),
            user_id,
            body.get("transaction_id"),
        )
        return 201, payment_to_dict(payment)

    async def _get_payment(self, request: ApiRequest, payment_id: str) -> ApiResponse:
        return 200, payment_to_dict(await self.payments.get_payment(payment_id))

    async def _list_payments(self, request: ApiRequest, booking_id: str) -> ApiResponse:
        payments = await self.payments.get_payments_for_booking(booking_id)
        return 200, {"content": [payment_to_dict(p) for p in payments]}

    async def _process_payment(self, request: ApiRequest, payment_id: str) -> ApiResponse:
        user_id = request.require_user()
        return 200, payment_to_dict(await self.payments.process_payment(payment_id, user_id))

    async def _refund_payment(self, request: ApiRequest, payment_id: str) -> ApiResponse:
        user_id = request.require_user()
        return 200, payment_to_dict(await self.payments.refund_payment(payment_id, user_id))

    async def _fail_payment(self, request: ApiRequest, payment_id: str) -> ApiResponse:
        user_id = request.require_user()
        return 200, payment_to_dict(await self.payments.fail_payment(payment_id, user_id))

    async def _cancel_pending_payments(
        self, request: ApiRequest, booking_id: str
    ) -> ApiResponse:
        user_id = request.require_user()
        count = await self.payments.cancel_pending_payments(booking_id, user_id)
        return 200, {"booking_id": booking_id, "cancelled": count}

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def _run_sweeps(self, request: ApiRequest) -> ApiResponse:
        if self.sweeps is None:
            return _error(503, "UNAVAILABLE", "Sweeps are not available")

        expiry = await self.sweeps.process_expired_bookings()
        completion = await self.sweeps.process_completed_bookings()
        logger.info("Sweeps triggered via API")
        return 200, {
            "expiry": sweep_result_to_dict(expiry),
            "completion": sweep_result_to_dict(completion),
        }
