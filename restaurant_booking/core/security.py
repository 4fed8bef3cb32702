"""
Authentication helpers: password hashing, JWT access tokens, phone numbers,
and the AuthContext handed to the booking engine.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from restaurant_booking.core.config import get_settings
from restaurant_booking.core.exceptions import AuthenticationError
from restaurant_booking.models import UserRole

PHONE_PATTERN = re.compile(r"^(\+?[1-9]\d{9,14}|0\d{9,10})$")


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller, already verified upstream of the engine."""
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_access(self, owner_id: int) -> bool:
        """Admins see everything, customers only their own records."""
        return self.is_admin or owner_id == self.user_id


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and parentheses."""
    return re.sub(r"[\s\-()]", "", phone or "")


def validate_phone_number(phone: str) -> bool:
    """
    Accepts formats like +989123456789, 09123456789, 9123456789.
    """
    cleaned = normalize_phone(phone)
    if len(cleaned) < 10 or len(cleaned) > 15:
        return False
    return bool(PHONE_PATTERN.match(cleaned))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: int, phone: str, role: UserRole) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "phone": phone,
        "role": role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=settings.jwt_expire_hours)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Raises:
        AuthenticationError: Token is malformed, tampered with or expired
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid or expired token")

    if "user_id" not in claims or "role" not in claims:
        raise AuthenticationError("Invalid or expired token")
    return claims
