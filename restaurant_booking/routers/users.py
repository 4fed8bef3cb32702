"""User management (admin)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import ConflictError, NotFoundError, ValidationError
from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import get_db
from restaurant_booking.dependencies import require_admin
from restaurant_booking.models import (
    ACTIVE_RESERVATION_STATUSES,
    Notification,
    Reservation,
    User,
    UserRole,
)
from restaurant_booking.schemas import UserResponse, UserRoleUpdate, envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

ACTIVE_RESERVATIONS_MESSAGE = "Cannot delete user with active reservations"


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _admin_count(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(User.id)).where(User.role == UserRole.ADMIN))
    return result.scalar() or 0


@router.get("", summary="All users")
async def list_users(
    role: Optional[UserRole] = Query(None),
    search: Optional[str] = Query(None, description="Matches name, last name or phone"),
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            User.name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.phone.ilike(pattern),
        ))

    result = await db.execute(query.order_by(User.created_at.desc(), User.id.desc()))
    users = result.scalars().all()
    return envelope([UserResponse.model_validate(u) for u in users], "Users retrieved successfully")


@router.get("/{user_id}", summary="Get a user")
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    user = await _get_user(db, user_id)
    return envelope(UserResponse.model_validate(user), "User retrieved successfully")


@router.put("/{user_id}/role", summary="Change a user's role")
async def update_user_role(
    user_id: int,
    data: UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> dict:
    user = await _get_user(db, user_id)

    if user.role == UserRole.ADMIN and data.role != UserRole.ADMIN and await _admin_count(db) <= 1:
        raise ConflictError("Cannot remove the last admin")

    if user.role != data.role:
        user.role = data.role
        await db.commit()
        logger.info(f"User #{user.id} role set to {data.role.value} by admin #{auth.user_id}")

    return envelope(UserResponse.model_validate(user), "User role updated successfully")


@router.delete("/{user_id}", summary="Delete a user without active reservations")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> dict:
    """
    Remove a user with their reservation history and notifications.

    Users holding pending or confirmed reservations are refused, so no table
    is left reserved for an account that no longer exists.
    """
    user = await _get_user(db, user_id)
    if user.id == auth.user_id:
        raise ValidationError("Cannot delete your own account")

    active = await db.execute(
        select(func.count(Reservation.id)).where(
            Reservation.user_id == user.id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
    )
    if (active.scalar() or 0) > 0:
        raise ConflictError(ACTIVE_RESERVATIONS_MESSAGE)

    await db.execute(delete(Notification).where(Notification.user_id == user.id))
    await db.execute(delete(Reservation).where(Reservation.user_id == user.id))
    await db.execute(delete(User).where(User.id == user.id))
    try:
        await db.commit()
    except IntegrityError:
        # A booking for this user committed in between
        await db.rollback()
        raise ConflictError(ACTIVE_RESERVATIONS_MESSAGE)

    logger.info(f"User #{user_id} deleted by admin #{auth.user_id}")
    return envelope(None, "User deleted successfully")
