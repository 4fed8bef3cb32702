"""Table inventory endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import get_db
from restaurant_booking.dependencies import require_admin
from restaurant_booking.models import TableStatus
from restaurant_booking.schemas import (
    StatusOption,
    TableCreate,
    TableResponse,
    TableUpdate,
    envelope,
)
from restaurant_booking.services.tables import TableService, get_table_service

router = APIRouter(prefix="/tables", tags=["Tables"])


@router.get("/available", summary="Tables open for booking (public)")
async def list_available_tables(
    capacity: Optional[int] = Query(None, ge=1),
    location: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: TableService = Depends(get_table_service),
) -> dict:
    tables = await service.list_tables(db, TableStatus.AVAILABLE, capacity, location)
    return envelope(
        [TableResponse.model_validate(t) for t in tables],
        "Available tables retrieved successfully",
    )


@router.get("/statuses", summary="Possible table statuses")
async def list_table_statuses() -> dict:
    return envelope(
        [StatusOption(value=s.value, label=s.value.title()) for s in TableStatus],
        "Table statuses retrieved successfully",
    )


@router.get("", summary="All tables (admin)")
async def list_tables(
    status: Optional[TableStatus] = Query(None),
    capacity: Optional[int] = Query(None, ge=1),
    location: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: TableService = Depends(get_table_service),
    _: AuthContext = Depends(require_admin),
) -> dict:
    tables = await service.list_tables(db, status, capacity, location)
    return envelope([TableResponse.model_validate(t) for t in tables], "Tables retrieved successfully")


@router.get("/{table_id}", summary="Get a table")
async def get_table(
    table_id: int,
    db: AsyncSession = Depends(get_db),
    service: TableService = Depends(get_table_service),
) -> dict:
    table = await service.get_table(db, table_id)
    return envelope(TableResponse.model_validate(table), "Table retrieved successfully")


@router.post("", summary="Create a table (admin)")
async def create_table(
    data: TableCreate,
    service: TableService = Depends(get_table_service),
    _: AuthContext = Depends(require_admin),
) -> dict:
    table = await service.create(data)
    return envelope(TableResponse.model_validate(table), "Table created successfully")


@router.put("/{table_id}", summary="Update a table (admin)")
async def update_table(
    table_id: int,
    data: TableUpdate,
    service: TableService = Depends(get_table_service),
    _: AuthContext = Depends(require_admin),
) -> dict:
    table = await service.update(table_id, data)
    return envelope(TableResponse.model_validate(table), "Table updated successfully")


@router.delete("/{table_id}", summary="Delete a table without active reservations (admin)")
async def delete_table(
    table_id: int,
    service: TableService = Depends(get_table_service),
    _: AuthContext = Depends(require_admin),
) -> dict:
    await service.delete(table_id)
    return envelope(None, "Table deleted successfully")
