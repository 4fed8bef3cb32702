"""Menu items and categories."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import ConflictError, NotFoundError
from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import get_db
from restaurant_booking.dependencies import require_admin
from restaurant_booking.models import Category, MenuItem
from restaurant_booking.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    envelope,
)

logger = logging.getLogger(__name__)

menu_router = APIRouter(prefix="/menu", tags=["Menu"])
category_router = APIRouter(prefix="/categories", tags=["Categories"])


async def _get_or_404(db: AsyncSession, model, item_id: int, message: str):
    obj = await db.get(model, item_id)
    if obj is None:
        raise NotFoundError(message)
    return obj


async def _ensure_category(db: AsyncSession, slug: str) -> None:
    result = await db.execute(select(Category.id).where(Category.name == slug))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Category not found")


# =============================================================================
# MENU ITEMS
# =============================================================================

@menu_router.get("", summary="Menu items")
async def list_menu_items(
    category: Optional[str] = Query(None),
    available: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Matches name or description"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    query = select(MenuItem)
    if category:
        query = query.where(MenuItem.category == category.strip().lower())
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))
    if available is not None:
        query = query.where(MenuItem.is_available == available)

    result = await db.execute(query.order_by(MenuItem.category, MenuItem.name))
    items = result.scalars().all()
    return envelope([MenuItemResponse.model_validate(i) for i in items], "Menu items retrieved successfully")


@menu_router.get("/category/{slug}", summary="Available items in a category")
async def list_menu_items_by_category(slug: str, db: AsyncSession = Depends(get_db)) -> dict:
    slug = slug.strip().lower()
    await _ensure_category(db, slug)
    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.category == slug, MenuItem.is_available.is_(True))
        .order_by(MenuItem.name)
    )
    items = result.scalars().all()
    return envelope([MenuItemResponse.model_validate(i) for i in items], "Menu items retrieved successfully")


@menu_router.get("/{item_id}", summary="Get a menu item")
async def get_menu_item(item_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    item = await _get_or_404(db, MenuItem, item_id, "Menu item not found")
    return envelope(MenuItemResponse.model_validate(item), "Menu item retrieved successfully")


@menu_router.post("", summary="Create a menu item (admin)")
async def create_menu_item(
    data: MenuItemCreate,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    values = data.model_dump()
    values["category"] = values["category"].strip().lower()
    await _ensure_category(db, values["category"])

    item = MenuItem(**values)
    db.add(item)
    await db.commit()
    logger.info(f"Menu item #{item.id} '{item.name}' created")
    return envelope(MenuItemResponse.model_validate(item), "Menu item created successfully")


@menu_router.put("/{item_id}", summary="Update a menu item (admin)")
async def update_menu_item(
    item_id: int,
    data: MenuItemUpdate,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    item = await _get_or_404(db, MenuItem, item_id, "Menu item not found")
    changes = data.model_dump(exclude_unset=True)
    if changes.get("category"):
        changes["category"] = changes["category"].strip().lower()
        await _ensure_category(db, changes["category"])

    for field, value in changes.items():
        setattr(item, field, value)
    await db.commit()
    return envelope(MenuItemResponse.model_validate(item), "Menu item updated successfully")


@menu_router.delete("/{item_id}", summary="Delete a menu item (admin)")
async def delete_menu_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    item = await _get_or_404(db, MenuItem, item_id, "Menu item not found")
    await db.delete(item)
    await db.commit()
    return envelope(None, "Menu item deleted successfully")


# =============================================================================
# CATEGORIES
# =============================================================================

@category_router.get("", summary="Categories")
async def list_categories(
    active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> dict:
    query = select(Category)
    if active is not None:
        query = query.where(Category.is_active == active)
    result = await db.execute(query.order_by(Category.sort_order, Category.name))
    categories = result.scalars().all()
    return envelope([CategoryResponse.model_validate(c) for c in categories], "Categories retrieved successfully")


@category_router.get("/{category_id}", summary="Get a category")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    category = await _get_or_404(db, Category, category_id, "Category not found")
    return envelope(CategoryResponse.model_validate(category), "Category retrieved successfully")


@category_router.post("", summary="Create a category (admin)")
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    category = Category(**data.model_dump())
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Category with this name already exists")
    return envelope(CategoryResponse.model_validate(category), "Category created successfully")


@category_router.put("/{category_id}", summary="Update a category (admin)")
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    category = await _get_or_404(db, Category, category_id, "Category not found")
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Category with this name already exists")
    return envelope(CategoryResponse.model_validate(category), "Category updated successfully")


@category_router.delete("/{category_id}", summary="Delete an unused category (admin)")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    _: AuthContext = Depends(require_admin),
) -> dict:
    category = await _get_or_404(db, Category, category_id, "Category not found")
    in_use = await db.execute(select(MenuItem.id).where(MenuItem.category == category.name).limit(1))
    if in_use.scalar_one_or_none() is not None:
        raise ConflictError("Cannot delete category that has menu items")

    await db.delete(category)
    await db.commit()
    return envelope(None, "Category deleted successfully")
