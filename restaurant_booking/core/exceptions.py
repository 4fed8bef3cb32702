"""
Typed application errors.

Every failure the booking core can produce is one of these classes. They
travel up to the HTTP boundary unchanged, where a single exception handler
turns them into the standard JSON envelope with the matching status code.
"""

from typing import Any, Optional


class ReservationError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ReservationError):
    """Malformed or missing input (bad date/time, slot in the past...)."""
    status_code = 400
    default_message = "Validation error"


class NotFoundError(ReservationError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(ReservationError):
    """Slot already booked, table unavailable, reservation already cancelled."""
    status_code = 409
    default_message = "Conflict"


class StateError(ReservationError):
    """Illegal reservation status transition."""
    status_code = 400
    default_message = "Invalid status transition"


class InternalError(ReservationError):
    """Store failure or another condition the caller cannot fix."""
    status_code = 500
    default_message = "Internal Server Error"


class TransactionTimeoutError(InternalError):
    """Table lock or store transaction exceeded its time budget."""
    status_code = 503
    default_message = "Reservation service is busy, please retry"


class AuthenticationError(ReservationError):
    status_code = 401
    default_message = "Not authenticated"


class PermissionDeniedError(ReservationError):
    status_code = 403
    default_message = "Insufficient permissions"
