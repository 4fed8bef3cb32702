"""
Seed Script

Creates the schema, an admin account, a few tables and a starter menu.
Safe to re-run: existing rows are left alone.

Run from project root: python scripts/seed.py
"""

import asyncio
import logging
import os
import sys

from sqlalchemy import select

from restaurant_booking.core.config import setup_logging
from restaurant_booking.core.security import hash_password
from restaurant_booking.database import async_session_maker, engine, init_db
from restaurant_booking.models import Category, MenuItem, Table, User, UserRole

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

logger = logging.getLogger("restaurant_booking.seed")

ADMIN_PHONE = os.getenv("SEED_ADMIN_PHONE", "09120000000")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")

TABLES = [
    (1, 2, "Window"),
    (2, 4, "Window"),
    (3, 4, "Main Hall"),
    (4, 6, "Main Hall"),
    (5, 8, "Terrace"),
]

CATEGORIES = [
    ("appetizer", "Appetizer", 1),
    ("main", "Main Course", 2),
    ("dessert", "Dessert", 3),
    ("drink", "Drinks", 4),
]

MENU_ITEMS = [
    ("Caesar Salad", 8.99, "appetizer"),
    ("Garlic Bread", 5.99, "appetizer"),
    ("Pasta Carbonara", 13.99, "main"),
    ("Grilled Salmon", 18.50, "main"),
    ("Tiramisu", 7.99, "dessert"),
    ("Sparkling Water", 3.49, "drink"),
]


async def seed() -> None:
    await init_db()

    async with async_session_maker() as session:
        admin = (await session.execute(select(User).where(User.phone == ADMIN_PHONE))).scalar_one_or_none()
        if admin is None:
            session.add(User(
                phone=ADMIN_PHONE,
                name="Admin",
                password_hash=hash_password(ADMIN_PASSWORD),
                role=UserRole.ADMIN,
            ))
            logger.info(f"Admin {ADMIN_PHONE} created")

        existing_tables = set((await session.execute(select(Table.number))).scalars())
        for number, capacity, location in TABLES:
            if number not in existing_tables:
                session.add(Table(number=number, capacity=capacity, location=location))

        existing_categories = set((await session.execute(select(Category.name))).scalars())
        for name, display_name, sort_order in CATEGORIES:
            if name not in existing_categories:
                session.add(Category(name=name, display_name=display_name, sort_order=sort_order))

        existing_items = set((await session.execute(select(MenuItem.name))).scalars())
        for name, price, category in MENU_ITEMS:
            if name not in existing_items:
                session.add(MenuItem(name=name, price=price, category=category))

        await session.commit()

    logger.info("Seed complete")
    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
