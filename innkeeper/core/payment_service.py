"""Payment service: payment records and the implicit booking confirmation.

No money moves here. Processing a payment completes the record and confirms
its booking in the same unit of work; refunds leave the booking untouched.
"""

import logging
import uuid
from decimal import Decimal

from .audit import record_event
from .booking_service import load_owned_booking
from .errors import ForbiddenError, InvalidArgumentError, InvalidStateError, NotFoundError
from .models import BookingStatus, EventType, Payment, PaymentMethod, PaymentStatus
from .ports import Clock, PaymentPort, StoreSession, UnitOfWorkPort, utc_now

logger = logging.getLogger(__name__)


async def _load_owned_payment(
    session: StoreSession, payment_id: str, user_id: str, action: str
) -> Payment:
    payment = await session.payments.get(payment_id, for_update=True)
    if payment is None:
        raise NotFoundError("Payment", payment_id)

    booking = await session.bookings.get(payment.booking_id, for_update=True)
    if booking is None:
        raise NotFoundError("Booking", payment.booking_id)
    if booking.user_id != user_id:
        raise ForbiddenError(f"User is not authorized to {action} payment {payment_id}")
    return payment


class PaymentService(PaymentPort):
    """Core implementation of PaymentPort."""

    def __init__(self, uow: UnitOfWorkPort, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_payment(
        self,
        booking_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        user_id: str,
        transaction_id: str | None = None,
    ) -> Payment:
        if not amount.is_finite() or amount <= 0:
            raise InvalidArgumentError(f"Payment amount must be positive, got {amount}")
        if amount.normalize().as_tuple().exponent < -2:
            raise InvalidArgumentError(
                f"Payment amount cannot have more than 2 decimal places, got {amount}"
            )

        now = self.clock()
        async with self.uow.transaction() as session:
            booking = await load_owned_booking(session, booking_id, user_id, "pay for")
            if booking.status != BookingStatus.PENDING_PAYMENT:
                raise InvalidStateError(
                    f"Booking {booking_id} is not pending payment "
                    f"(status: {booking.status.value})"
                )

            payment = Payment(
                id=str(uuid.uuid4()),
                booking_id=booking_id,
                amount=amount,
                status=PaymentStatus.PENDING,
                payment_method=payment_method,
                transaction_id=transaction_id,
                created_at=now,
                updated_at=now,
            )
            await session.payments.save(payment)
            await record_event(
                session,
                EventType.PAYMENT_CREATED,
                user_id,
                payment.id,
                f"Payment created for booking {booking_id} with amount {amount}",
            )

        logger.info(f"Created payment {payment.id} for booking {booking_id}")
        return payment

    async def get_payment(self, payment_id: str) -> Payment:
        async with self.uow.transaction(read_only=True) as session:
            payment = await session.payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def get_payments_for_booking(self, booking_id: str) -> list[Payment]:
        async with self.uow.transaction(read_only=True) as session:
            return await session.payments.find_by_booking(booking_id)

    async def process_payment(self, payment_id: str, user_id: str) -> Payment:
        logger.info(f"Processing payment {payment_id}")
        now = self.clock()

        async with self.uow.transaction() as session:
            payment = await _load_owned_payment(session, payment_id, user_id, "process")
            booking = await session.bookings.get(payment.booking_id, for_update=True)

            payment.complete(now)
            # Raises InvalidStateError unless the booking is still pending,
            # rolling back the payment change with it.
            booking.confirm(now)

            await session.payments.save(payment)
            await session.bookings.save(booking)

            await record_event(
                session,
                EventType.PAYMENT_COMPLETED,
                user_id,
                payment.id,
                f"Payment completed for booking {booking.id}",
            )
            await record_event(
                session,
                EventType.BOOKING_CONFIRMED,
                user_id,
                booking.id,
                "Booking confirmed by payment",
            )

        logger.info(f"Payment {payment_id} completed, booking {booking.id} confirmed")
        return payment

    async def refund_payment(self, payment_id: str, user_id: str) -> Payment:
        now = self.clock()
        async with self.uow.transaction() as session:
            payment = await _load_owned_payment(session, payment_id, user_id, "refund")
            payment.refund(now)
            await session.payments.save(payment)
            await record_event(
                session,
                EventType.PAYMENT_REFUNDED,
                user_id,
                payment.id,
                f"Payment refunded for booking {payment.booking_id}",
            )

        logger.info(f"Refunded payment {payment_id}")
        return payment

    async def fail_payment(self, payment_id: str, user_id: str) -> Payment:
        now = self.clock()
        async with self.uow.transaction() as session:
            payment = await _load_owned_payment(session, payment_id, user_id, "update")
            payment.fail(now)
            await session.payments.save(payment)
            await record_event(
                session,
                EventType.PAYMENT_STATUS_UPDATED,
                user_id,
                payment.id,
                f"Payment status updated to {payment.status.value}",
            )

        logger.info(f"Marked payment {payment_id} as failed")
        return payment

    async def cancel_pending_payments(self, booking_id: str, user_id: str) -> int:
        now = self.clock()
        async with self.uow.transaction() as session:
            await load_owned_booking(session, booking_id, user_id, "cancel payments of")
            pending = await session.payments.find_by_booking(
                booking_id, PaymentStatus.PENDING
            )
            for payment in pending:
                payment.cancel(now)
                await session.payments.save(payment)
                await record_event(
                    session,
                    EventType.PAYMENT_CANCELLED,
                    user_id,
                    payment.id,
                    f"Payment cancelled for booking {booking_id}",
                )

        logger.info(f"Cancelled {len(pending)} pending payment(s) for booking {booking_id}")
        return len(pending)
