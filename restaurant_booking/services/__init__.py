"""
                        Services Module

Booking business logic:
    - locks: per-table lock registry
    - state_machine: legal reservation status transitions
    - table_status: table availability derivation
    - reservations: transactional reservation engine
    - tables: table inventory management
    - notifications: fire-and-forget notification dispatchers
"""

from restaurant_booking.services.locks import TableLockRegistry, get_table_lock_registry
from restaurant_booking.services.reservations import ReservationEngine, get_reservation_engine
from restaurant_booking.services.tables import TableService, get_table_service

__all__ = [
    "ReservationEngine",
    "TableLockRegistry",
    "TableService",
    "get_reservation_engine",
    "get_table_lock_registry",
    "get_table_service",
]
