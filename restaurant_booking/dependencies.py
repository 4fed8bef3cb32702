"""
FastAPI dependencies: authentication context and role checks.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import AuthenticationError, PermissionDeniedError
from restaurant_booking.core.security import AuthContext, decode_access_token
from restaurant_booking.database import get_db
from restaurant_booking.models import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the Bearer token to a stored user."""
    if credentials is None:
        raise AuthenticationError("Authorization header is required")
    if credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format")

    claims = decode_access_token(credentials.credentials)
    user = await db.get(User, int(claims["user_id"]))
    if user is None:
        raise AuthenticationError("User no longer exists")
    return user


async def get_auth_context(user: User = Depends(get_current_user)) -> AuthContext:
    # Role comes from the stored user so demotions apply to existing tokens
    return AuthContext(user_id=user.id, role=user.role)


async def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if auth.role != UserRole.ADMIN:
        raise PermissionDeniedError()
    return auth

