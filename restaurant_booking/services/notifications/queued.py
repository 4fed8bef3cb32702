"""
Celery Notification Dispatcher

Staging/production implementation: events are published to the Celery broker
and delivered by the worker (see restaurant_booking.tasks). Publishing runs in
the default thread pool so a slow or unreachable broker never stalls the
event loop or the response.

Author: Restaurant Booking Team
Version: 1.0.0
"""

import asyncio
import logging
from typing import Any, Callable

from restaurant_booking.models import NotificationType
from restaurant_booking.services.notifications.base import (
    BaseNotificationDispatcher,
    ReservationEvent,
)

logger = logging.getLogger(__name__)


class CeleryNotificationDispatcher(BaseNotificationDispatcher):
    """Queue-backed notification dispatcher."""

    def __init__(self):
        # Imported here so the API only loads Celery when this backend is used
        from restaurant_booking import tasks

        self._tasks = tasks
        logger.info("CeleryNotificationDispatcher initialized")

    @property
    def provider_name(self) -> str:
        return "celery"

    def _publish(self, label: str, send: Callable[[], Any]) -> None:
        try:
            result = send()
            logger.debug(f"Queued notification {label} (task {result.id})")
        except Exception as e:
            logger.error(f"Failed to queue notification {label}: {e}")

    def _submit(self, label: str, send: Callable[[], Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._publish(label, send)
            return
        loop.run_in_executor(None, self._publish, label, send)

    def dispatch(self, event: ReservationEvent) -> None:
        payload = event.to_payload()
        self._submit(
            f"{event.kind.value}:{event.reservation_id}",
            lambda: self._tasks.deliver_reservation_notification.apply_async(
                args=[payload], retry=False
            ),
        )

    def notify(
        self,
        user_id: int,
        message: str,
        kind: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        self._submit(
            f"user:{user_id}",
            lambda: self._tasks.send_notification.apply_async(
                args=[user_id, message, kind.value], retry=False
            ),
        )

    async def health_check(self) -> bool:
        """Check broker connectivity."""
        def ping() -> bool:
            with self._tasks.celery_app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1)
            return True

        try:
            return await asyncio.to_thread(ping)
        except Exception as e:
            logger.warning(f"Celery broker unreachable: {e}")
            return False
