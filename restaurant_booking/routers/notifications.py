"""The caller's own notifications."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import NotFoundError
from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import get_db
from restaurant_booking.dependencies import get_auth_context
from restaurant_booking.models import Notification
from restaurant_booking.schemas import NotificationResponse, envelope

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", summary="List the caller's notifications, newest first")
async def list_notifications(
    unread: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    query = select(Notification).where(Notification.user_id == auth.user_id)
    if unread:
        query = query.where(Notification.is_read.is_(False))

    result = await db.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
    notifications = result.scalars().all()
    return envelope(
        [NotificationResponse.model_validate(n) for n in notifications],
        "Notifications retrieved successfully",
    )


@router.put("/{notification_id}/read", summary="Mark a notification as read")
async def mark_notification_read(
    notification_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != auth.user_id:
        raise NotFoundError("Notification not found")

    notification.is_read = True
    await db.commit()
    return envelope(NotificationResponse.model_validate(notification), "Notification marked as read")
