"""
SQLAlchemy Database Models

Tables, reservations and the supporting entities of the booking system:
- Users (customers and admins)
- Tables and their availability status
- Reservations with their lifecycle status
- Notifications produced by reservation changes
- Menu categories and menu items
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from restaurant_booking.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values ("pending") rather than member names ("PENDING")."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class TableStatus(str, enum.Enum):
    """Availability of a physical table."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class ReservationStatus(str, enum.Enum):
    """Reservation lifecycle. CANCELLED and COMPLETED are terminal."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold a slot
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class NotificationType(str, enum.Enum):
    RESERVATION = "reservation"
    SYSTEM = "system"
    PROMOTION = "promotion"


class User(Base):
    """Registered user. Customers book tables, admins manage everything."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(
        Enum(UserRole, name="user_role", native_enum=False, values_callable=_values),
        default=UserRole.CUSTOMER,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    reservations = relationship("Reservation", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User #{self.id} - {self.phone} - {self.role.value}>"


class Table(Base):
    """
    Physical seating resource.

    `status` toggles between AVAILABLE and RESERVED as reservations come and
    go; OCCUPIED and MAINTENANCE are only ever set by an admin.
    """
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    number = Column(Integer, nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False)
    location = Column(String(100), nullable=False)
    status = Column(
        Enum(TableStatus, name="table_status", native_enum=False, values_callable=_values),
        default=TableStatus.AVAILABLE,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    reservations = relationship("Reservation", back_populates="table")

    def __repr__(self):
        return f"<Table #{self.number} - seats {self.capacity} - {self.status.value}>"


class Reservation(Base):
    """
    Booking of one table for one user at one date and time.

    The partial unique index is the durable backstop for the slot rule:
    at most one PENDING/CONFIRMED reservation per (table, date, time).
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    status = Column(
        Enum(ReservationStatus, name="reservation_status", native_enum=False, values_callable=_values),
        default=ReservationStatus.PENDING,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    user = relationship("User", back_populates="reservations")
    table = relationship("Table", back_populates="reservations")

    __table_args__ = (
        Index(
            "uq_reservations_active_slot",
            "table_id",
            "date",
            "time",
            unique=True,
            postgresql_where=status.in_([s.value for s in ACTIVE_RESERVATION_STATUSES]),
            sqlite_where=status.in_([s.value for s in ACTIVE_RESERVATION_STATUSES]),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RESERVATION_STATUSES

    def __repr__(self):
        return (
            f"<Reservation #{self.id} - table {self.table_id} - "
            f"{self.date} {self.time} - {self.status.value}>"
        )


class Notification(Base):
    """Message delivered to a user after a reservation changes."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    type = Column(
        Enum(NotificationType, name="notification_type", native_enum=False, values_callable=_values),
        nullable=False,
    )
    is_read = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Notification #{self.id} - user {self.user_id} - {self.type.value}>"


class Category(Base):
    """Menu category (e.g. "appetizer" shown as "Appetizer")."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    def __repr__(self):
        return f"<Category {self.name}>"


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    image_url = Column(String(500), nullable=True)
    category = Column(String(50), nullable=False, index=True)
    is_available = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price:.2f}>"
