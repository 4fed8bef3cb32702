"""
Notification texts for reservation events.

Pure functions shared by the in-process dispatcher and the Celery task so
both channels produce identical messages.
"""

from typing import Optional

from restaurant_booking.services.notifications.base import (
    ReservationEvent,
    ReservationEventKind,
)


def customer_message(event: ReservationEvent) -> str:
    """Message for the user who owns the reservation."""
    where = f"table #{event.table_number} on {event.date} at {event.time}"

    if event.kind == ReservationEventKind.CREATED:
        return (
            f"Your reservation for {where} has been created successfully. "
            f"Status: {event.status}"
        )
    if event.kind == ReservationEventKind.CANCELLED:
        return f"Your reservation for {where} has been cancelled."
    return f"Your reservation for {where} has been updated. New status: {event.status}"


def admin_message(event: ReservationEvent) -> Optional[str]:
    """Message broadcast to every admin, or None when admins are not told."""
    who = f"User {event.user_name or 'unknown'} (ID: {event.user_id})"
    slot = f"table #{event.table_number} on {event.date} at {event.time}"

    if event.kind == ReservationEventKind.CREATED:
        return f"New reservation created: {who} reserved {slot}"
    if event.kind == ReservationEventKind.CANCELLED:
        return f"Reservation cancelled: {who} cancelled reservation for {slot}"
    return None
