"""
Reservation Transaction Engine

Creates, cancels and transitions reservations so that a table can never be
double-booked, whatever the request interleaving.

Every write runs the same protocol:

    1. validate the request (before any lock is taken)
    2. take the in-process lock for the table (TableLockRegistry)
    3. open a store transaction with its own session
    4. re-read the table and reservation rows with SELECT ... FOR UPDATE
       (table first, so all writers lock rows in the same order)
    5. check the invariants, mutate, re-derive the table status
    6. commit, release the table lock
    7. hand a ReservationEvent to the notification dispatcher

Any failure between 3 and 6 rolls the transaction back and releases the lock.
The lock wait and the transaction each have a time budget; exceeding one
raises TransactionTimeoutError.
"""

import asyncio
import logging
from datetime import date as date_type, datetime, time as time_type, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from restaurant_booking.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    ReservationError,
    TransactionTimeoutError,
    ValidationError,
)
from restaurant_booking.core.security import AuthContext
from restaurant_booking.models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
    Table,
    TableStatus,
    User,
)
from restaurant_booking.services.locks import TableLockRegistry
from restaurant_booking.services.notifications import (
    BaseNotificationDispatcher,
    ReservationEvent,
    ReservationEventKind,
)
from restaurant_booking.services.state_machine import (
    check_cancellable,
    check_transition,
    parse_status,
)
from restaurant_booking.services.table_status import recompute_table_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

SLOT_TAKEN_MESSAGE = "Table is already reserved at this date and time"

# PostgreSQL SQLSTATE for lock_timeout / NOWAIT failures
LOCK_NOT_AVAILABLE = "55P03"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_slot(date_str: str, time_str: str) -> tuple[date_type, time_type]:
    """
    Parse the client's "YYYY-MM-DD" / "HH:MM" pair.

    Raises:
        ValidationError: Either part is malformed
    """
    try:
        slot_date = datetime.strptime(str(date_str).strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")

    try:
        slot_time = datetime.strptime(str(time_str).strip(), TIME_FORMAT).time()
    except ValueError:
        raise ValidationError("Invalid time format. Use HH:MM")

    return slot_date, slot_time


def _event_from(kind: ReservationEventKind, reservation: Reservation, table: Table,
                user_name: Optional[str]) -> ReservationEvent:
    return ReservationEvent(
        kind=kind,
        reservation_id=reservation.id,
        user_id=reservation.user_id,
        table_number=table.number,
        date=reservation.date.isoformat(),
        time=reservation.time.strftime(TIME_FORMAT),
        status=reservation.status.value,
        user_name=user_name,
    )


async def lock_table_row(session: AsyncSession, table_id: int) -> Optional[Table]:
    """Re-read a table holding its row lock until the transaction ends."""
    result = await session.execute(
        select(Table).where(Table.id == table_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def ensure_table_exists(session_factory: Callable[[], AsyncSession], table_id: int) -> None:
    """
    Raise NotFoundError for unknown tables.

    Runs before a table lock is taken so the lock registry only ever holds
    entries for tables that exist.
    """
    try:
        async with session_factory() as session:
            found = (
                await session.execute(select(Table.id).where(Table.id == table_id))
            ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.exception(f"Failed to look up table {table_id}: {e}")
        raise InternalError("Failed to fetch table")

    if found is None:
        raise NotFoundError("Table not found")


async def lock_reservation_row(session: AsyncSession, reservation_id: int) -> Optional[Reservation]:
    result = await session.execute(
        select(Reservation).where(Reservation.id == reservation_id).with_for_update()
    )
    return result.scalar_one_or_none()


class ReservationEngine:
    """
    Serialized, transactional reservation writes plus the read queries
    the API needs.

    Args:
        session_factory: Builds a fresh AsyncSession per write transaction
        locks: Shared per-table lock registry
        dispatcher: Fire-and-forget notification channel
        lock_timeout: Seconds to wait for the table lock
        transaction_timeout: Seconds the store transaction may run
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        locks: TableLockRegistry,
        dispatcher: BaseNotificationDispatcher,
        lock_timeout: Optional[float] = 10.0,
        transaction_timeout: Optional[float] = 15.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._dispatcher = dispatcher
        self._lock_timeout = lock_timeout
        self._transaction_timeout = transaction_timeout
        self._clock = clock

    @property
    def locks(self) -> TableLockRegistry:
        return self._locks

    # =========================================================================
    # TRANSACTION PLUMBING
    # =========================================================================

    async def _apply_store_lock_timeout(self, session: AsyncSession) -> None:
        if self._transaction_timeout is None:
            return
        if session.get_bind().dialect.name == "postgresql":
            millis = int(self._transaction_timeout * 1000)
            await session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))

    async def _in_transaction(
        self,
        work: Callable[..., Awaitable[T]],
        *args: Any,
        conflict_message: str = "Conflicting concurrent update",
    ) -> T:
        """
        Run `work(session, *args)` in one transaction on a fresh session.

        Commits when `work` returns, rolls back on any exception. Store
        errors are translated into the typed error taxonomy.
        """
        async def run() -> T:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._apply_store_lock_timeout(session)
                    return await work(session, *args)

        try:
            return await asyncio.wait_for(run(), timeout=self._transaction_timeout)
        except ReservationError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Reservation transaction exceeded {self._transaction_timeout}s, rolled back")
            raise TransactionTimeoutError()
        except IntegrityError as e:
            logger.warning(f"Integrity violation, rolled back: {e.orig}")
            raise ConflictError(conflict_message)
        except OperationalError as e:
            if getattr(e.orig, "sqlstate", None) == LOCK_NOT_AVAILABLE:
                logger.warning("Row lock wait exceeded lock_timeout, rolled back")
                raise TransactionTimeoutError()
            logger.exception(f"Store failure during reservation transaction: {e}")
            raise InternalError("Database error")
        except SQLAlchemyError as e:
            logger.exception(f"Store failure during reservation transaction: {e}")
            raise InternalError("Database error")

    async def _table_id_of(self, reservation_id: int, auth: Optional[AuthContext] = None) -> int:
        """Find which table lock a reservation operation needs."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Reservation.table_id, Reservation.user_id)
                    .where(Reservation.id == reservation_id)
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            logger.exception(f"Failed to fetch reservation #{reservation_id}: {e}")
            raise InternalError("Failed to fetch reservation")

        if row is None or (auth is not None and not auth.can_access(row.user_id)):
            raise NotFoundError("Reservation not found")
        return row.table_id

    def _emit(self, event: ReservationEvent) -> None:
        try:
            self._dispatcher.dispatch(event)
        except Exception as e:
            logger.error(f"Notification dispatch failed for reservation #{event.reservation_id}: {e}")

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create(
        self,
        auth: AuthContext,
        table_id: int,
        date_str: str,
        time_str: str,
    ) -> Reservation:
        """
        Book `table_id` for the authenticated user at date/time (UTC).

        Returns:
            The new PENDING reservation, with `table` loaded

        Raises:
            ValidationError: Malformed or past date/time
            NotFoundError: Table does not exist
            ConflictError: Table not available or slot already booked
            TransactionTimeoutError: Lock or transaction budget exceeded
        """
        slot_date, slot_time = parse_slot(date_str, time_str)
        starts_at = datetime.combine(slot_date, slot_time, tzinfo=timezone.utc)
        if starts_at <= self._clock():
            raise ValidationError("Cannot make reservation in the past")

        await ensure_table_exists(self._session_factory, table_id)
        async with self._locks.hold(table_id, timeout=self._lock_timeout):
            reservation, table, user_name = await self._in_transaction(
                self._create_in_transaction,
                auth.user_id,
                table_id,
                slot_date,
                slot_time,
                conflict_message=SLOT_TAKEN_MESSAGE,
            )

        logger.info(
            f"Reservation #{reservation.id} created: table #{table.number} "
            f"{slot_date} {slot_time:%H:%M} for user {auth.user_id}"
        )
        self._emit(_event_from(ReservationEventKind.CREATED, reservation, table, user_name))
        return reservation

    async def _create_in_transaction(
        self,
        session: AsyncSession,
        user_id: int,
        table_id: int,
        slot_date: date_type,
        slot_time: time_type,
    ) -> tuple[Reservation, Table, Optional[str]]:
        table = await lock_table_row(session, table_id)
        if table is None:
            raise NotFoundError("Table not found")

        existing = await session.execute(
            select(Reservation.id).where(
                Reservation.table_id == table_id,
                Reservation.date == slot_date,
                Reservation.time == slot_time,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            ).limit(1)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info(f"Slot conflict on table #{table.number} {slot_date} {slot_time:%H:%M}")
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        if table.status != TableStatus.AVAILABLE:
            raise ConflictError("Table is not available")

        reservation = Reservation(
            user_id=user_id,
            table_id=table_id,
            date=slot_date,
            time=slot_time,
            status=ReservationStatus.PENDING,
        )
        session.add(reservation)

        await recompute_table_status(session, table)
        set_committed_value(reservation, "table", table)

        user_name = (
            await session.execute(select(User.name).where(User.id == user_id))
        ).scalar_one_or_none()
        return reservation, table, user_name

    # =========================================================================
    # CANCEL
    # =========================================================================

    async def cancel(self, auth: AuthContext, reservation_id: int) -> Reservation:
        """
        Cancel a reservation. Customers may only cancel their own.

        Raises:
            NotFoundError: Reservation missing or owned by someone else
            ConflictError: Already cancelled
            StateError: Already completed
        """
        table_id = await self._table_id_of(reservation_id, auth)

        async with self._locks.hold(table_id, timeout=self._lock_timeout):
            reservation, table, user_name = await self._in_transaction(
                self._cancel_in_transaction, auth, table_id, reservation_id,
            )

        logger.info(f"Reservation #{reservation.id} cancelled by user {auth.user_id}")
        self._emit(_event_from(ReservationEventKind.CANCELLED, reservation, table, user_name))
        return reservation

    async def _cancel_in_transaction(
        self,
        session: AsyncSession,
        auth: AuthContext,
        table_id: int,
        reservation_id: int,
    ) -> tuple[Reservation, Table, Optional[str]]:
        table = await lock_table_row(session, table_id)
        reservation = await lock_reservation_row(session, reservation_id)
        if reservation is None or table is None or not auth.can_access(reservation.user_id):
            raise NotFoundError("Reservation not found")

        check_cancellable(reservation.status)

        reservation.status = ReservationStatus.CANCELLED
        await recompute_table_status(session, table)
        set_committed_value(reservation, "table", table)

        user_name = (
            await session.execute(select(User.name).where(User.id == reservation.user_id))
        ).scalar_one_or_none()
        return reservation, table, user_name

    # =========================================================================
    # STATUS UPDATE (admin)
    # =========================================================================

    async def update_status(self, reservation_id: int, status: str) -> Reservation:
        """
        Apply an admin status change through the state machine.

        Moving to the current status (pending/confirmed) is accepted without
        writing the reservation or sending a notification.

        Raises:
            ValidationError: `status` is not a reservation status
            NotFoundError: Reservation missing
            StateError: Transition not allowed
        """
        target = parse_status(status)
        table_id = await self._table_id_of(reservation_id)

        async with self._locks.hold(table_id, timeout=self._lock_timeout):
            reservation, table, changed = await self._in_transaction(
                self._update_status_in_transaction, table_id, reservation_id, target,
            )

        if changed:
            logger.info(f"Reservation #{reservation.id} status → {reservation.status.value}")
            self._emit(_event_from(ReservationEventKind.STATUS_UPDATED, reservation, table, None))
        return reservation

    async def _update_status_in_transaction(
        self,
        session: AsyncSession,
        table_id: int,
        reservation_id: int,
        target: ReservationStatus,
    ) -> tuple[Reservation, Table, bool]:
        table = await lock_table_row(session, table_id)
        reservation = await lock_reservation_row(session, reservation_id)
        if reservation is None or table is None:
            raise NotFoundError("Reservation not found")

        changed = check_transition(reservation.status, target)
        if changed:
            reservation.status = target

        await recompute_table_status(session, table)
        set_committed_value(reservation, "table", table)
        return reservation, table, changed

    # =========================================================================
    # READS
    # =========================================================================

    @staticmethod
    def _filtered(query, status: Optional[str], on_date: Optional[str]):
        if status:
            query = query.where(Reservation.status == parse_status(status))
        if on_date:
            try:
                day = datetime.strptime(on_date, DATE_FORMAT).date()
            except ValueError:
                raise ValidationError("Invalid date format. Use YYYY-MM-DD")
            query = query.where(Reservation.date == day)
        return query.order_by(Reservation.date.desc(), Reservation.time.desc())

    async def list_for_user(
        self,
        session: AsyncSession,
        auth: AuthContext,
        status: Optional[str] = None,
        on_date: Optional[str] = None,
    ) -> list[Reservation]:
        query = (
            select(Reservation)
            .options(selectinload(Reservation.table))
            .where(Reservation.user_id == auth.user_id)
        )
        result = await session.execute(self._filtered(query, status, on_date))
        return list(result.scalars().all())

    async def list_all(
        self,
        session: AsyncSession,
        status: Optional[str] = None,
        on_date: Optional[str] = None,
        user_id: Optional[int] = None,
        table_id: Optional[int] = None,
    ) -> list[Reservation]:
        query = select(Reservation).options(selectinload(Reservation.table))
        if user_id is not None:
            query = query.where(Reservation.user_id == user_id)
        if table_id is not None:
            query = query.where(Reservation.table_id == table_id)

        result = await session.execute(self._filtered(query, status, on_date))
        return list(result.scalars().all())

    async def get(self, session: AsyncSession, auth: AuthContext, reservation_id: int) -> Reservation:
        result = await session.execute(
            select(Reservation)
            .options(selectinload(Reservation.table))
            .where(Reservation.id == reservation_id)
        )
        reservation = result.scalar_one_or_none()
        if reservation is None or not auth.can_access(reservation.user_id):
            raise NotFoundError("Reservation not found")
        return reservation


@lru_cache()
def get_reservation_engine() -> ReservationEngine:
    """
    Process-wide engine wired to the application's store, lock registry
    and notification dispatcher.
    """
    from restaurant_booking.core.config import get_settings
    from restaurant_booking.database import async_session_maker
    from restaurant_booking.services.locks import get_table_lock_registry
    from restaurant_booking.services.notifications import get_notification_dispatcher

    settings = get_settings()
    return ReservationEngine(
        session_factory=async_session_maker,
        locks=get_table_lock_registry(),
        dispatcher=get_notification_dispatcher(),
        lock_timeout=settings.reservation_lock_timeout_seconds,
        transaction_timeout=settings.reservation_transaction_timeout_seconds,
    )
