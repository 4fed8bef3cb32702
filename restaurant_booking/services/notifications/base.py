"""
Notification Dispatcher Abstract Base Class

Defines the fire-and-forget interface the reservation engine uses after a
successful commit. Implementations must return immediately and must never
raise into the caller: delivery problems are logged and dropped.

Author: Restaurant Booking Team
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from restaurant_booking.models import NotificationType


class ReservationEventKind(str, Enum):
    CREATED = "reservation_created"
    CANCELLED = "reservation_cancelled"
    STATUS_UPDATED = "reservation_status_updated"


@dataclass(frozen=True)
class ReservationEvent:
    """Snapshot of a committed reservation change, safe to queue as JSON."""
    kind: ReservationEventKind
    reservation_id: int
    user_id: int
    table_number: int
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    status: str
    user_name: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ReservationEvent":
        data = dict(payload)
        data["kind"] = ReservationEventKind(data["kind"])
        return cls(**data)


class BaseNotificationDispatcher(ABC):
    """Abstract base class for notification dispatchers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def dispatch(self, event: ReservationEvent) -> None:
        """Queue delivery of a reservation event. Never blocks, never raises."""
        pass

    @abstractmethod
    def notify(
        self,
        user_id: int,
        message: str,
        kind: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        """Queue a single free-form notification. Never blocks, never raises."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check that the delivery channel is usable."""
        pass

    async def drain(self) -> None:
        """Wait for in-flight deliveries (no-op for queued backends)."""
        return None
