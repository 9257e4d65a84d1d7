"""SQLite store adapter.

Implements UnitOfWorkPort and the store ports using SQLite with aiosqlite
for async access. Write transactions start with BEGIN IMMEDIATE, which takes
the database write lock up front: a second writer waits (busy_timeout) until
the first commits, so for_update reads need no extra locking here.

Prices are stored as TEXT to keep Decimal exact. Unit total prices are also
stored as integer cents so the search price filters compare exactly.
Datetimes are stored as fixed-width UTC ISO-8601 strings so that string
comparison in SQL matches chronological order.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from pathlib import Path
from typing import Any

import aiosqlite

from innkeeper.core.models import (
    AccommodationType,
    Booking,
    BookingStatus,
    EventType,
    Page,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Unit,
    UnitSearchCriteria,
)
from innkeeper.core.ports import (
    BookingStorePort,
    EventSinkPort,
    PaymentStorePort,
    StoreSession,
    UnitOfWorkPort,
    UnitStorePort,
    utc_now,
)

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS units (
        id TEXT PRIMARY KEY,
        number_of_rooms INTEGER NOT NULL,
        accommodation_type TEXT NOT NULL,
        floor INTEGER NOT NULL,
        base_price TEXT NOT NULL,
        total_price TEXT NOT NULL,
        total_price_cents INTEGER NOT NULL,
        description TEXT NOT NULL,
        available INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bookings (
        id TEXT PRIMARY KEY,
        unit_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        check_in TEXT NOT NULL,
        check_out TEXT NOT NULL,
        total_price TEXT NOT NULL,
        status TEXT NOT NULL,
        payment_deadline TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id TEXT PRIMARY KEY,
        booking_id TEXT NOT NULL REFERENCES bookings(id),
        amount TEXT NOT NULL,
        status TEXT NOT NULL,
        payment_method TEXT NOT NULL,
        transaction_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        event_type TEXT NOT NULL,
        user_id TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        description TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_units_available ON units(available, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_bookings_unit ON bookings(unit_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_bookings_user ON bookings(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status)",
    "CREATE INDEX IF NOT EXISTS idx_payments_booking ON payments(booking_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_entity ON events(entity_id)",
)


def _ts(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC string."""
    if value.tzinfo is None:
        raise ValueError(f"Naive datetime cannot be stored: {value!r}")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _cents(value: Decimal, rounding: str = ROUND_FLOOR) -> int:
    """Convert a price to whole cents, rounding any fraction of a cent."""
    return int(value.scaleb(2).to_integral_value(rounding=rounding))


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteUnitStore(UnitStorePort):
    """Unit persistence bound to one open connection."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def get(self, unit_id: str, for_update: bool = False) -> Unit | None:
        # for_update is implied by BEGIN IMMEDIATE on write transactions
        cursor = await self._conn.execute("SELECT * FROM units WHERE id = ?", (unit_id,))
        row = await cursor.fetchone()
        return None if row is None else self._row_to_unit(row)

    async def save(self, unit: Unit) -> Unit:
        await self._conn.execute(
            """
            INSERT INTO units
            (id, number_of_rooms, accommodation_type, floor, base_price,
             total_price, total_price_cents, description, available,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                number_of_rooms = excluded.number_of_rooms,
                accommodation_type = excluded.accommodation_type,
                floor = excluded.floor,
                base_price = excluded.base_price,
                total_price = excluded.total_price,
                total_price_cents = excluded.total_price_cents,
                description = excluded.description,
                available = excluded.available,
                updated_at = excluded.updated_at
            """,
            (
                unit.id,
                unit.number_of_rooms,
                unit.accommodation_type.value,
                unit.floor,
                str(unit.base_price),
                str(unit.total_price),
                _cents(unit.total_price),
                unit.description,
                1 if unit.available else 0,
                _ts(unit.created_at),
                _ts(unit.updated_at),
            ),
        )
        return unit

    async def delete(self, unit_id: str) -> None:
        await self._conn.execute("DELETE FROM units WHERE id = ?", (unit_id,))

    async def count_available(self) -> int:
        cursor = await self._conn.execute("SELECT COUNT(*) FROM units WHERE available = 1")
        row = await cursor.fetchone()
        return row[0]

    async def search(self, criteria: UnitSearchCriteria) -> Page[Unit]:
        clauses = ["u.available = 1"]
        params: list[Any] = []

        if criteria.number_of_rooms is not None:
            clauses.append("u.number_of_rooms = ?")
            params.append(criteria.number_of_rooms)
        if criteria.accommodation_type is not None:
            clauses.append("u.accommodation_type = ?")
            params.append(criteria.accommodation_type.value)
        if criteria.floor is not None:
            clauses.append("u.floor = ?")
            params.append(criteria.floor)
        if criteria.min_price is not None:
            clauses.append("u.total_price_cents >= ?")
            params.append(_cents(criteria.min_price, ROUND_CEILING))
        if criteria.max_price is not None:
            clauses.append("u.total_price_cents <= ?")
            params.append(_cents(criteria.max_price))
        if criteria.has_date_range:
            statuses = [BookingStatus.CONFIRMED.value, BookingStatus.PENDING_PAYMENT.value]
            clauses.append(
                f"""NOT EXISTS (
                    SELECT 1 FROM bookings b
                    WHERE b.unit_id = u.id
                    AND b.status IN ({_placeholders(statuses)})
                    AND b.check_in <= ? AND b.check_out >= ?
                )"""
            )
            params.extend(statuses)
            params.extend([_ts(criteria.check_out), _ts(criteria.check_in)])

        where = " AND ".join(clauses)
        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM units u WHERE {where}", params
        )
        total = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            f"""
            SELECT u.* FROM units u WHERE {where}
            ORDER BY u.created_at DESC, u.id
            LIMIT ? OFFSET ?
            """,
            [*params, criteria.size, criteria.page * criteria.size],
        )
        rows = await cursor.fetchall()
        return Page.of(
            [self._row_to_unit(row) for row in rows],
            criteria.page,
            criteria.size,
            total,
        )

    @staticmethod
    def _row_to_unit(row: aiosqlite.Row) -> Unit:
        """Convert a database row to a Unit.

        Raises:
            ValueError: If the row holds invalid data.
        """
        try:
            return Unit(
                id=row["id"],
                number_of_rooms=row["number_of_rooms"],
                accommodation_type=AccommodationType(row["accommodation_type"]),
                floor=row["floor"],
                base_price=Decimal(row["base_price"]),
                total_price=Decimal(row["total_price"]),
                description=row["description"],
                available=bool(row["available"]),
                created_at=_dt(row["created_at"]),
                updated_at=_dt(row["updated_at"]),
            )
        except (ValueError, ArithmeticError) as e:
            logger.error(f"Failed to parse unit row {row['id']}: {e}")
            raise ValueError(f"Unit row parsing failed: {e}") from e


class SQLiteBookingStore(BookingStorePort):
    """Booking persistence bound to one open connection."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def get(self, booking_id: str, for_update: bool = False) -> Booking | None:
        cursor = await self._conn.execute(
            "SELECT * FROM bookings WHERE id = ?", (booking_id,)
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_booking(row)

    async def save(self, booking: Booking) -> Booking:
        await self._conn.execute(
            """
            INSERT INTO bookings
            (id, unit_id, user_id, check_in, check_out, total_price, status,
             payment_deadline, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                updated_at = excluded.updated_at
            """,
            (
                booking.id,
                booking.unit_id,
                booking.user_id,
                _ts(booking.check_in),
                _ts(booking.check_out),
                str(booking.total_price),
                booking.status.value,
                _ts(booking.payment_deadline),
                _ts(booking.created_at),
                _ts(booking.updated_at),
            ),
        )
        return booking

    async def find_overlapping(
        self,
        unit_id: str,
        statuses: Sequence[BookingStatus],
        check_in: datetime,
        check_out: datetime,
    ) -> list[Booking]:
        values = [s.value for s in statuses]
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM bookings
            WHERE unit_id = ?
            AND status IN ({_placeholders(values)})
            AND check_in <= ? AND check_out >= ?
            """,
            [unit_id, *values, _ts(check_out), _ts(check_in)],
        )
        return [self._row_to_booking(row) for row in await cursor.fetchall()]

    async def find_by_status_and_deadline_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        cursor = await self._conn.execute(
            """
            SELECT * FROM bookings
            WHERE status = ? AND payment_deadline < ?
            ORDER BY payment_deadline
            """,
            (status.value, _ts(instant)),
        )
        return [self._row_to_booking(row) for row in await cursor.fetchall()]

    async def find_by_status_and_checkout_before(
        self, status: BookingStatus, instant: datetime
    ) -> list[Booking]:
        cursor = await self._conn.execute(
            """
            SELECT * FROM bookings
            WHERE status = ? AND check_out <= ?
            ORDER BY check_out
            """,
            (status.value, _ts(instant)),
        )
        return [self._row_to_booking(row) for row in await cursor.fetchall()]

    async def find_by_user(self, user_id: str, page: int, size: int) -> Page[Booking]:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM bookings WHERE user_id = ?", (user_id,)
        )
        total = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            """
            SELECT * FROM bookings WHERE user_id = ?
            ORDER BY created_at DESC, id
            LIMIT ? OFFSET ?
            """,
            (user_id, size, page * size),
        )
        rows = await cursor.fetchall()
        return Page.of([self._row_to_booking(row) for row in rows], page, size, total)

    async def find_by_unit(
        self, unit_id: str, statuses: Sequence[BookingStatus]
    ) -> list[Booking]:
        values = [s.value for s in statuses]
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM bookings
            WHERE unit_id = ? AND status IN ({_placeholders(values)})
            """,
            [unit_id, *values],
        )
        return [self._row_to_booking(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_booking(row: aiosqlite.Row) -> Booking:
        try:
            return Booking(
                id=row["id"],
                unit_id=row["unit_id"],
                user_id=row["user_id"],
                check_in=_dt(row["check_in"]),
                check_out=_dt(row["check_out"]),
                total_price=Decimal(row["total_price"]),
                status=BookingStatus(row["status"]),
                payment_deadline=_dt(row["payment_deadline"]),
                created_at=_dt(row["created_at"]),
                updated_at=_dt(row["updated_at"]),
            )
        except (ValueError, ArithmeticError) as e:
            logger.error(f"Failed to parse booking row {row['id']}: {e}")
            raise ValueError(f"Booking row parsing failed: {e}") from e


class SQLitePaymentStore(PaymentStorePort):
    """Payment persistence bound to one open connection."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def get(self, payment_id: str, for_update: bool = False) -> Payment | None:
        cursor = await self._conn.execute(
            "SELECT * FROM payments WHERE id = ?", (payment_id,)
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_payment(row)

    async def save(self, payment: Payment) -> Payment:
        await self._conn.execute(
            """
            INSERT INTO payments
            (id, booking_id, amount, status, payment_method, transaction_id,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                transaction_id = excluded.transaction_id,
                updated_at = excluded.updated_at
            """,
            (
                payment.id,
                payment.booking_id,
                str(payment.amount),
                payment.status.value,
                payment.payment_method.value,
                payment.transaction_id,
                _ts(payment.created_at),
                _ts(payment.updated_at),
            ),
        )
        return payment

    async def find_by_booking(
        self, booking_id: str, status: PaymentStatus | None = None
    ) -> list[Payment]:
        query = "SELECT * FROM payments WHERE booking_id = ?"
        params: list[Any] = [booking_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        cursor = await self._conn.execute(query + " ORDER BY created_at, id", params)
        return [self._row_to_payment(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_payment(row: aiosqlite.Row) -> Payment:
        return Payment(
            id=row["id"],
            booking_id=row["booking_id"],
            amount=Decimal(row["amount"]),
            status=PaymentStatus(row["status"]),
            payment_method=PaymentMethod(row["payment_method"]),
            transaction_id=row["transaction_id"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )


class SQLiteEventSink(EventSinkPort):
    """Append-only event log written inside a savepoint."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def record(
        self,
        event_type: EventType,
        user_id: str,
        entity_id: str,
        description: str,
    ) -> None:
        await self._conn.execute("SAVEPOINT event_write")
        try:
            await self._conn.execute(
                """
                INSERT INTO events
                (id, event_type, user_id, entity_id, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    event_type.value,
                    user_id,
                    entity_id,
                    description,
                    _ts(utc_now()),
                ),
            )
        except Exception:
            await self._conn.execute("ROLLBACK TO SAVEPOINT event_write")
            await self._conn.execute("RELEASE SAVEPOINT event_write")
            raise
        await self._conn.execute("RELEASE SAVEPOINT event_write")


class SQLiteSession(StoreSession):
    """All stores bound to a single connection and its open transaction."""

    def __init__(self, conn: aiosqlite.Connection):
        self.units = SQLiteUnitStore(conn)
        self.bookings = SQLiteBookingStore(conn)
        self.payments = SQLitePaymentStore(conn)
        self.events = SQLiteEventSink(conn)


class SQLiteUnitOfWork(UnitOfWorkPort):
    """SQLite-backed unit of work with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5, busy_timeout_ms: int = 5000):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of connections to keep in the pool.
            busy_timeout_ms: How long a writer waits for the database write
                lock before failing with "database is locked".
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._busy_timeout_ms = busy_timeout_ms
        self._schema_initialized = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()

        # Autocommit mode: transactions are opened explicitly below
        conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
        return conn

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        if conn.in_transaction:
            logger.warning("Discarding connection returned with an open transaction")
            await conn.close()
            return

        async with self._pool_lock:
            if len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    async def close(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            for conn in self._pool:
                await conn.close()
            self._pool.clear()

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return

        async with self._schema_lock:
            # Check again after acquiring lock to prevent race
            if self._schema_initialized:
                return

            conn = await self._get_connection()
            try:
                await conn.execute("PRAGMA journal_mode = WAL")
                for statement in SCHEMA:
                    await conn.execute(statement)
                self._schema_initialized = True
            finally:
                await self._return_connection(conn)

    @asynccontextmanager
    async def transaction(self, read_only: bool = False) -> AsyncIterator[StoreSession]:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield SQLiteSession(conn)
                await conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
        finally:
            await self._return_connection(conn)
