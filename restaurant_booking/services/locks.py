"""
Per-Table Lock Registry

Hands out one asyncio.Lock per table id. Every request that touches a table's
reservations goes through the same lock instance, so booking operations on one
table run one at a time while different tables never wait on each other.

The registry is the in-process half of the booking concurrency control; the
other half is the store's row lock (SELECT ... FOR UPDATE) taken inside the
transaction, which is what protects multi-process deployments.
"""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional

from restaurant_booking.core.exceptions import TransactionTimeoutError

logger = logging.getLogger(__name__)


class TableLockRegistry:
    """Lazily-created, process-wide mutexes keyed by table id."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        # Guards get-or-create so concurrent first use yields a single lock
        self._guard = threading.Lock()

    def get_lock(self, table_id: int) -> asyncio.Lock:
        """Return the lock for `table_id`, creating it exactly once."""
        lock = self._locks.get(table_id)
        if lock is not None:
            return lock

        with self._guard:
            lock = self._locks.get(table_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[table_id] = lock
                logger.debug(f"Created lock for table {table_id}")
            return lock

    async def acquire(self, table_id: int, timeout: Optional[float] = None) -> asyncio.Lock:
        """
        Block until no other holder exists for `table_id`.

        Args:
            table_id: Table whose lock to take
            timeout: Max seconds to wait, None waits forever

        Returns:
            The held lock; pass it to `release`

        Raises:
            TransactionTimeoutError: The lock was not obtained within `timeout`
        """
        lock = self.get_lock(table_id)
        started = time.monotonic()

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s waiting for table {table_id} lock")
            raise TransactionTimeoutError(
                "Table is busy with another reservation, please retry"
            )

        waited = time.monotonic() - started
        if waited > 0.05:
            logger.debug(f"Table {table_id} lock acquired after {waited:.3f}s")
        return lock

    @staticmethod
    def release(lock: asyncio.Lock) -> None:
        """Unblock the next waiter, if any."""
        lock.release()

    @asynccontextmanager
    async def hold(self, table_id: int, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """
        Hold the table lock for the duration of the block.

        The lock is released on every exit path, including exceptions
        and task cancellation.

        Example:
            >>> async with registry.hold(table_id, timeout=10):
            ...     await do_booking()
        """
        lock = await self.acquire(table_id, timeout=timeout)
        try:
            yield
        finally:
            self.release(lock)

    def is_locked(self, table_id: int) -> bool:
        lock = self._locks.get(table_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


@lru_cache()
def get_table_lock_registry() -> TableLockRegistry:
    """Process-wide registry shared by every request."""
    return TableLockRegistry()
