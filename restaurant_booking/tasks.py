"""
Celery Tasks
Background delivery of reservation notifications.

Delivery is at-most-once: tasks are not retried, failures are logged and the
notification is dropped.
"""

import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select

from restaurant_booking.celery_worker import celery_app
from restaurant_booking.database import get_sync_session_maker
from restaurant_booking.models import Notification, NotificationType, User, UserRole
from restaurant_booking.services.notifications.base import ReservationEvent
from restaurant_booking.services.notifications.messages import (
    admin_message,
    customer_message,
)

logger = logging.getLogger(__name__)


def _store_notifications(recipients: list[tuple[int, str]], kind: NotificationType) -> int:
    session_maker = get_sync_session_maker()
    with session_maker() as session:
        session.add_all(
            Notification(user_id=user_id, message=message, type=kind)
            for user_id, message in recipients
        )
        session.commit()
    return len(recipients)


@celery_app.task(bind=True, max_retries=0, ignore_result=True)
def deliver_reservation_notification(self, payload: dict) -> dict:
    """
    Store notifications for a committed reservation change.

    The owner always gets a message; admins are told about creations and
    cancellations.

    Args:
        payload: ReservationEvent.to_payload() output

    Returns:
        dict: Delivery summary
    """
    task_id = self.request.id
    start_time = time.time()

    try:
        event = ReservationEvent.from_payload(payload)
        recipients = [(event.user_id, customer_message(event))]

        broadcast = admin_message(event)
        if broadcast:
            with get_sync_session_maker()() as session:
                admin_ids = session.execute(
                    select(User.id).where(User.role == UserRole.ADMIN)
                ).scalars().all()
            recipients.extend((admin_id, broadcast) for admin_id in admin_ids)

        delivered = _store_notifications(recipients, NotificationType.RESERVATION)
        elapsed = round(time.time() - start_time, 3)
        logger.info(
            f"Task {task_id}: {event.kind.value} for reservation "
            f"#{event.reservation_id} delivered to {delivered} recipient(s) in {elapsed}s"
        )
        return {"success": True, "delivered": delivered, "task_id": task_id}

    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.exception(f"Task {task_id}: notification dropped after {elapsed}s - {e}")
        return {"success": False, "delivered": 0, "task_id": task_id, "error": str(e)}


@celery_app.task(max_retries=0, ignore_result=True)
def send_notification(user_id: int, message: str, kind: str = NotificationType.SYSTEM.value) -> dict:
    """Store a single free-form notification."""
    try:
        _store_notifications([(user_id, message)], NotificationType(kind))
        return {"success": True, "user_id": user_id}
    except Exception as e:
        logger.exception(f"Notification for user {user_id} dropped - {e}")
        return {"success": False, "user_id": user_id, "error": str(e)}


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
