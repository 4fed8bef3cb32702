"""
Pydantic Schemas for Request/Response Validation

Every endpoint answers with the same envelope:

    {"success": true, "message": "...", "data": {...}}
    {"success": false, "message": "...", "errors": [...]}
"""

from datetime import date as date_type, datetime, time as time_type
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from restaurant_booking.core.security import validate_phone_number
from restaurant_booking.models import (
    NotificationType,
    ReservationStatus,
    TableStatus,
    UserRole,
)


# =============================================================================
# ENVELOPE
# =============================================================================

class APIResponse(BaseModel):
    """Standard response envelope."""
    success: bool = True
    message: str
    data: Any = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    message: str
    errors: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    notification_service: str
    environment: str
    timestamp: datetime


class StatusOption(BaseModel):
    value: str
    label: str


# =============================================================================
# AUTH / USERS
# =============================================================================

class SignupRequest(BaseModel):
    phone: str = Field(..., min_length=10, max_length=20, examples=["09123456789"])
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=1, max_length=100, examples=["Sara"])
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = v.strip()
        if not validate_phone_number(v):
            raise ValueError("Invalid phone number format")
        return v

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=20)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = v.strip()
        if not validate_phone_number(v):
            raise ValueError("Invalid phone number format")
        return v


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone: str
    name: str
    last_name: Optional[str] = None
    role: UserRole
    created_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class UserRoleUpdate(BaseModel):
    role: UserRole = Field(..., examples=["admin"])


# =============================================================================
# TABLES
# =============================================================================

class TableCreate(BaseModel):
    number: int = Field(..., gt=0, examples=[1])
    capacity: int = Field(..., gt=0, examples=[4])
    location: str = Field(..., min_length=1, max_length=100, examples=["Window"])
    status: TableStatus = Field(default=TableStatus.AVAILABLE)


class TableUpdate(BaseModel):
    number: Optional[int] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, gt=0)
    location: Optional[str] = Field(None, min_length=1, max_length=100)
    status: Optional[TableStatus] = None


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    number: int
    capacity: int
    location: str
    status: TableStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


# =============================================================================
# RESERVATIONS
# =============================================================================

class ReservationCreate(BaseModel):
    """Date and time are parsed by the booking engine (YYYY-MM-DD, HH:MM, UTC)."""
    table_id: int = Field(..., gt=0, examples=[1])
    date: str = Field(..., min_length=1, examples=["2030-01-01"])
    time: str = Field(..., min_length=1, examples=["19:00"])


class ReservationStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, examples=["confirmed"])


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    table_id: int
    date: date_type
    time: time_type
    status: ReservationStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    table: Optional[TableResponse] = None

    @field_serializer("time")
    def serialize_time(self, value: time_type) -> str:
        return value.strftime("%H:%M")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    message: str
    type: NotificationType
    is_read: bool
    created_at: datetime


# =============================================================================
# MENU
# =============================================================================

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, examples=["appetizer"])
    display_name: str = Field(..., min_length=1, max_length=100, examples=["Appetizer"])
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0

    @field_validator("name")
    @classmethod
    def slugify_name(cls, v: str) -> str:
        return v.strip().lower()


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None

    @field_validator("name")
    @classmethod
    def slugify_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else v

    @field_validator("name", "display_name", "is_active", "sort_order")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        # Omit a field to keep it; null would clear a required column
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    is_active: bool
    sort_order: int


class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Caesar Salad"])
    description: Optional[str] = None
    price: float = Field(..., gt=0, examples=[8.99])
    image_url: Optional[str] = Field(None, max_length=500)
    category: str = Field(..., min_length=1, max_length=50, examples=["appetizer"])
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    image_url: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    is_available: Optional[bool] = None

    @field_validator("name", "price", "category", "is_available")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: float
    image_url: Optional[str] = None
    category: str
    is_available: bool
    created_at: datetime


def envelope(data: Any, message: str) -> dict[str, Any]:
    """Build a success envelope from a schema, a list of schemas or plain data."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return APIResponse(success=True, message=message, data=data).model_dump(mode="json")
