"""
Table Status Derivation

A table's AVAILABLE/RESERVED status is a projection of its active
(pending or confirmed) reservations. It is recomputed from the store inside
the same transaction as every reservation change, never patched
incrementally. OCCUPIED and MAINTENANCE belong to the operator and are left
untouched.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    Table,
    TableStatus,
)

logger = logging.getLogger(__name__)

OPERATOR_STATUSES = frozenset({TableStatus.OCCUPIED, TableStatus.MAINTENANCE})


def derive_table_status(current: TableStatus, active_reservations: int) -> TableStatus:
    """
    Pure derivation rule.

    >>> derive_table_status(TableStatus.AVAILABLE, 1)
    <TableStatus.RESERVED: 'reserved'>
    >>> derive_table_status(TableStatus.RESERVED, 0)
    <TableStatus.AVAILABLE: 'available'>
    >>> derive_table_status(TableStatus.MAINTENANCE, 3)
    <TableStatus.MAINTENANCE: 'maintenance'>
    """
    if current in OPERATOR_STATUSES:
        return current
    return TableStatus.RESERVED if active_reservations > 0 else TableStatus.AVAILABLE


async def count_active_reservations(
    session: AsyncSession,
    table_id: int,
    exclude_reservation_id: Optional[int] = None,
) -> int:
    query = select(func.count(Reservation.id)).where(
        Reservation.table_id == table_id,
        Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)

    result = await session.execute(query)
    return result.scalar() or 0


async def recompute_table_status(session: AsyncSession, table: Table) -> TableStatus:
    """
    Re-derive and assign `table.status` from the reservations in the store.

    Must run inside the caller's transaction, after the reservation change
    has been flushed and while the table row is locked.

    Returns:
        The status now set on the table
    """
    await session.flush()
    active = await count_active_reservations(session, table.id)
    new_status = derive_table_status(table.status, active)

    if new_status != table.status:
        logger.info(
            f"Table #{table.number}: {table.status.value} → {new_status.value} "
            f"({active} active reservation(s))"
        )
        table.status = new_status

    return new_status
