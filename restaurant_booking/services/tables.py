"""
Table inventory management (admin).

Edits that can race with bookings (status changes, deletion) take the same
per-table lock and row lock as the reservation engine. An admin may pin a
table to OCCUPIED or MAINTENANCE; asking for AVAILABLE or RESERVED hands the
table back to the status derivation, which decides from the active
reservations.
"""

import logging
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import ConflictError, InternalError, NotFoundError
from restaurant_booking.models import Reservation, Table, TableStatus
from restaurant_booking.schemas import TableCreate, TableUpdate
from restaurant_booking.services.locks import TableLockRegistry
from restaurant_booking.services.reservations import ensure_table_exists, lock_table_row
from restaurant_booking.services.table_status import (
    OPERATOR_STATUSES,
    count_active_reservations,
    recompute_table_status,
)

logger = logging.getLogger(__name__)

DUPLICATE_NUMBER_MESSAGE = "Table with this number already exists"


class TableService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        locks: TableLockRegistry,
        lock_timeout: Optional[float] = 10.0,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._lock_timeout = lock_timeout

    async def _number_taken(self, session: AsyncSession, number: int, exclude_id: Optional[int] = None) -> bool:
        query = select(Table.id).where(Table.number == number)
        if exclude_id is not None:
            query = query.where(Table.id != exclude_id)
        return (await session.execute(query.limit(1))).scalar_one_or_none() is not None

    async def create(self, data: TableCreate) -> Table:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if await self._number_taken(session, data.number):
                        raise ConflictError(DUPLICATE_NUMBER_MESSAGE)

                    # A new table has no reservations, so it cannot start out reserved
                    status = data.status if data.status in OPERATOR_STATUSES else TableStatus.AVAILABLE
                    table = Table(
                        number=data.number,
                        capacity=data.capacity,
                        location=data.location.strip(),
                        status=status,
                    )
                    session.add(table)
        except IntegrityError:
            raise ConflictError(DUPLICATE_NUMBER_MESSAGE)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to create table: {e}")
            raise InternalError("Failed to create table")

        logger.info(f"Table #{table.number} created (capacity {table.capacity})")
        return table

    async def update(self, table_id: int, data: TableUpdate) -> Table:
        await ensure_table_exists(self._session_factory, table_id)
        async with self._locks.hold(table_id, timeout=self._lock_timeout):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        table = await lock_table_row(session, table_id)
                        if table is None:
                            raise NotFoundError("Table not found")

                        if data.number is not None and data.number != table.number:
                            if await self._number_taken(session, data.number, exclude_id=table_id):
                                raise ConflictError(DUPLICATE_NUMBER_MESSAGE)
                            table.number = data.number
                        if data.capacity is not None:
                            table.capacity = data.capacity
                        if data.location is not None:
                            table.location = data.location.strip()

                        if data.status is not None:
                            if data.status in OPERATOR_STATUSES:
                                table.status = data.status
                            else:
                                table.status = TableStatus.AVAILABLE
                                derived = await recompute_table_status(session, table)
                                if derived != data.status:
                                    logger.info(
                                        f"Table #{table.number}: requested {data.status.value}, "
                                        f"derived {derived.value} from reservations"
                                    )
            except IntegrityError:
                raise ConflictError(DUPLICATE_NUMBER_MESSAGE)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to update table {table_id}: {e}")
                raise InternalError("Failed to update table")

        return table

    async def delete(self, table_id: int) -> None:
        """
        Delete a table and its reservation history.

        Raises:
            NotFoundError: Table missing
            ConflictError: The table still has pending/confirmed reservations
        """
        await ensure_table_exists(self._session_factory, table_id)
        async with self._locks.hold(table_id, timeout=self._lock_timeout):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        table = await lock_table_row(session, table_id)
                        if table is None:
                            raise NotFoundError("Table not found")

                        if await count_active_reservations(session, table_id) > 0:
                            raise ConflictError("Cannot delete table with active reservations")

                        await session.execute(delete(Reservation).where(Reservation.table_id == table_id))
                        await session.delete(table)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to delete table {table_id}: {e}")
                raise InternalError("Failed to delete table")

        logger.info(f"Table #{table.number} deleted")

    async def list_tables(
        self,
        session: AsyncSession,
        status: Optional[TableStatus] = None,
        min_capacity: Optional[int] = None,
        location: Optional[str] = None,
    ) -> list[Table]:
        query = select(Table)
        if status is not None:
            query = query.where(Table.status == status)
        if min_capacity:
            query = query.where(Table.capacity >= min_capacity)
        if location:
            query = query.where(func.lower(Table.location).contains(location.lower()))

        result = await session.execute(query.order_by(Table.number.asc()))
        return list(result.scalars().all())

    async def get_table(self, session: AsyncSession, table_id: int) -> Table:
        table = await session.get(Table, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        return table


@lru_cache()
def get_table_service() -> TableService:
    from restaurant_booking.core.config import get_settings
    from restaurant_booking.database import async_session_maker
    from restaurant_booking.services.locks import get_table_lock_registry

    return TableService(
        session_factory=async_session_maker,
        locks=get_table_lock_registry(),
        lock_timeout=get_settings().reservation_lock_timeout_seconds,
    )
