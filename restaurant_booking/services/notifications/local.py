"""
In-Process Notification Dispatcher

Development implementation: each event becomes a detached asyncio task that
writes Notification rows through its own database session. The request that
triggered it never awaits the task.

Author: Restaurant Booking Team
Version: 1.0.0
"""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.models import Notification, NotificationType, User, UserRole
from restaurant_booking.services.notifications.base import (
    BaseNotificationDispatcher,
    ReservationEvent,
)
from restaurant_booking.services.notifications.messages import (
    admin_message,
    customer_message,
)

logger = logging.getLogger(__name__)


class LocalNotificationDispatcher(BaseNotificationDispatcher):
    """Background-task notification dispatcher for development."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()
        logger.info("LocalNotificationDispatcher initialized")

    @property
    def provider_name(self) -> str:
        return "local"

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro, label: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.error(f"No running event loop, dropped notification ({label})")
            return

        task = loop.create_task(coro, name=f"notify:{label}")
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def dispatch(self, event: ReservationEvent) -> None:
        self._spawn(self._deliver_event(event), f"{event.kind.value}:{event.reservation_id}")

    def notify(
        self,
        user_id: int,
        message: str,
        kind: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        self._spawn(self._deliver_messages([(user_id, message)], kind), f"user:{user_id}")

    async def _deliver_event(self, event: ReservationEvent) -> None:
        try:
            recipients = [(event.user_id, customer_message(event))]

            broadcast: Optional[str] = admin_message(event)
            if broadcast:
                async with self._session_factory() as session:
                    result = await session.execute(
                        select(User.id).where(User.role == UserRole.ADMIN)
                    )
                    recipients.extend((admin_id, broadcast) for admin_id in result.scalars())

            await self._deliver_messages(recipients, NotificationType.RESERVATION)
            logger.info(
                f"Delivered {event.kind.value} for reservation #{event.reservation_id} "
                f"to {len(recipients)} recipient(s)"
            )
        except Exception as e:
            logger.exception(
                f"Notification delivery failed for reservation #{event.reservation_id}: {e}"
            )

    async def _deliver_messages(
        self,
        recipients: list[tuple[int, str]],
        kind: NotificationType,
    ) -> None:
        try:
            async with self._session_factory() as session:
                session.add_all(
                    Notification(user_id=user_id, message=message, type=kind)
                    for user_id, message in recipients
                )
                await session.commit()

            for user_id, message in recipients:
                logger.info(f"[NOTIFICATION] User ID: {user_id} | Type: {kind.value} | {message}")
        except Exception as e:
            logger.exception(f"Failed to store notification(s): {e}")

    async def drain(self) -> None:
        """Wait for every in-flight delivery; used at shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def health_check(self) -> bool:
        """In-process delivery is always available."""
        return True
