"""
Reservation State Machine

Single source of truth for which reservation status changes are legal.

    pending   ──► confirmed ──► completed
       │  │            │
       │  └──► completed (admin override)
       ▼               ▼
    cancelled ◄────────┘

CANCELLED and COMPLETED are terminal: nothing may be applied to them, not
even their own status. For PENDING and CONFIRMED, moving to the status the
reservation already has is accepted as a no-op.
"""

from typing import Union

from restaurant_booking.core.exceptions import ConflictError, StateError, ValidationError
from restaurant_booking.models import ReservationStatus


TERMINAL_STATUSES = frozenset({ReservationStatus.CANCELLED, ReservationStatus.COMPLETED})

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.CANCELLED,
        ReservationStatus.COMPLETED,
    }),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.CANCELLED,
        ReservationStatus.COMPLETED,
    }),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


def parse_status(value: Union[str, ReservationStatus]) -> ReservationStatus:
    """Coerce a client-supplied value into a ReservationStatus."""
    if isinstance(value, ReservationStatus):
        return value
    try:
        return ReservationStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Invalid reservation status")


def is_terminal(status: ReservationStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    if is_terminal(current):
        return False
    return current == target or target in ALLOWED_TRANSITIONS[current]


def check_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    """
    Validate a status change requested through the admin status endpoint.

    Args:
        current: Status stored on the reservation
        target: Requested status

    Returns:
        True if the row must be written, False for an idempotent no-op

    Raises:
        StateError: The move is not in ALLOWED_TRANSITIONS
    """
    if is_terminal(current):
        raise StateError(
            f"Invalid status transition from {current.value} to {target.value}: "
            f"reservation is already {current.value}"
        )
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StateError(
            f"Invalid status transition from {current.value} to {target.value}"
        )
    return True


def check_cancellable(current: ReservationStatus) -> None:
    """
    Validate the customer-facing cancel operation.

    Cancel is not idempotent: cancelling twice is reported to the caller.
    """
    if current == ReservationStatus.CANCELLED:
        raise ConflictError("Reservation is already cancelled")
    if current == ReservationStatus.COMPLETED:
        raise StateError("Cannot cancel completed reservation")
