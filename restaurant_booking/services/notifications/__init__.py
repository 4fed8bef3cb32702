"""
Notification Dispatcher Factory

Returns the in-process or Celery dispatcher based on ENV_MODE:
    - ENV_MODE=development → LocalNotificationDispatcher (no Redis needed)
    - ENV_MODE=staging/production → CeleryNotificationDispatcher
"""

import logging
from functools import lru_cache

from restaurant_booking.core.config import get_settings
from restaurant_booking.services.notifications.base import (
    BaseNotificationDispatcher,
    ReservationEvent,
    ReservationEventKind,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_dispatcher() -> BaseNotificationDispatcher:
    """Get the configured notification dispatcher."""
    settings = get_settings()

    if settings.is_development:
        from restaurant_booking.database import async_session_maker
        from restaurant_booking.services.notifications.local import LocalNotificationDispatcher

        logger.info("Notification Dispatcher: Using LocalNotificationDispatcher (development mode)")
        return LocalNotificationDispatcher(async_session_maker)

    from restaurant_booking.services.notifications.queued import CeleryNotificationDispatcher

    logger.info(
        f"Notification Dispatcher: Using CeleryNotificationDispatcher ({settings.env_mode.value} mode)"
    )
    return CeleryNotificationDispatcher()


def reset_notification_dispatcher() -> None:
    """Clear the cached dispatcher instance."""
    get_notification_dispatcher.cache_clear()


__all__ = [
    "get_notification_dispatcher",
    "reset_notification_dispatcher",
    "BaseNotificationDispatcher",
    "ReservationEvent",
    "ReservationEventKind",
]
