"""
Reservation endpoints.

Writes go through the ReservationEngine; reads use the request session.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import get_db
from restaurant_booking.dependencies import get_auth_context, require_admin
from restaurant_booking.models import ReservationStatus
from restaurant_booking.schemas import (
    ReservationCreate,
    ReservationResponse,
    ReservationStatusUpdate,
    StatusOption,
    envelope,
)
from restaurant_booking.services.reservations import ReservationEngine, get_reservation_engine

router = APIRouter(prefix="/reservations", tags=["Reservations"])
admin_router = APIRouter(prefix="/admin/reservations", tags=["Admin"])


@router.post("", summary="Book a table")
async def create_reservation(
    data: ReservationCreate,
    auth: AuthContext = Depends(get_auth_context),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> dict:
    reservation = await engine.create(auth, data.table_id, data.date, data.time)
    return envelope(ReservationResponse.model_validate(reservation), "Reservation created successfully")


@router.get("/my", summary="The caller's reservations")
async def list_my_reservations(
    status: Optional[str] = Query(None),
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> dict:
    reservations = await engine.list_for_user(db, auth, status, date)
    return envelope(
        [ReservationResponse.model_validate(r) for r in reservations],
        "Reservations retrieved successfully",
    )


@router.get("/statuses", summary="Possible reservation statuses")
async def list_reservation_statuses() -> dict:
    return envelope(
        [StatusOption(value=s.value, label=s.value.title()) for s in ReservationStatus],
        "Reservation statuses retrieved successfully",
    )


@router.get("/{reservation_id}", summary="Get one of the caller's reservations")
async def get_reservation(
    reservation_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> dict:
    reservation = await engine.get(db, auth, reservation_id)
    return envelope(ReservationResponse.model_validate(reservation), "Reservation retrieved successfully")


@router.delete("/{reservation_id}", summary="Cancel a reservation")
async def cancel_reservation(
    reservation_id: int,
    auth: AuthContext = Depends(get_auth_context),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> dict:
    reservation = await engine.cancel(auth, reservation_id)
    return envelope(ReservationResponse.model_validate(reservation), "Reservation cancelled successfully")


# =============================================================================
# ADMIN
# =============================================================================

@admin_router.get("", summary="All reservations")
async def list_all_reservations(
    status: Optional[str] = Query(None),
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    user_id: Optional[int] = Query(None),
    table_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    engine: ReservationEngine = Depends(get_reservation_engine),
    _: AuthContext = Depends(require_admin),
) -> dict:
    reservations = await engine.list_all(db, status, date, user_id, table_id)
    return envelope(
        [ReservationResponse.model_validate(r) for r in reservations],
        "Reservations retrieved successfully",
    )


@admin_router.put("/{reservation_id}/status", summary="Move a reservation through its lifecycle")
async def update_reservation_status(
    reservation_id: int,
    data: ReservationStatusUpdate,
    engine: ReservationEngine = Depends(get_reservation_engine),
    _: AuthContext = Depends(require_admin),
) -> dict:
    reservation = await engine.update_status(reservation_id, data.status)
    return envelope(
        ReservationResponse.model_validate(reservation),
        "Reservation status updated successfully",
    )
