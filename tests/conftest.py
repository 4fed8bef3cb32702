"""
Test Configuration and Fixtures

Tests run against a throwaway SQLite file through aiosqlite. The schema is
created and dropped around every test that asks for `db`.
"""

# =============================================================================
# Environment setup MUST happen before any application import: settings and
# the async engine are built at import time.
# =============================================================================
import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="restaurant_booking_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["SYNC_DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key"

from datetime import datetime, timezone  # noqa: E402
from typing import AsyncIterator, Optional  # noqa: E402

import bcrypt  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402

from restaurant_booking.core.security import AuthContext, create_access_token  # noqa: E402
from restaurant_booking.database import Base, async_session_maker, engine  # noqa: E402
from restaurant_booking.models import (  # noqa: E402
    NotificationType,
    Table,
    TableStatus,
    User,
    UserRole,
)
from restaurant_booking.services.locks import TableLockRegistry  # noqa: E402
from restaurant_booking.services.notifications.base import (  # noqa: E402
    BaseNotificationDispatcher,
    ReservationEvent,
)
from restaurant_booking.services.reservations import ReservationEngine  # noqa: E402
from restaurant_booking.services.tables import TableService  # noqa: E402

DEFAULT_PASSWORD = "secret123"
CUSTOMER_PHONE = "09123456789"
OTHER_CUSTOMER_PHONE = "09123456780"
ADMIN_PHONE = "09120000000"

# Every "now" in the engine tests; slot dates are chosen relative to it
FIXED_NOW = datetime(2029, 6, 1, 12, 0, tzinfo=timezone.utc)
FUTURE_DATE = "2030-01-01"
PAST_DATE = "2029-05-31"


class RecordingDispatcher(BaseNotificationDispatcher):
    """Collects events instead of delivering them."""

    def __init__(self) -> None:
        self.events: list[ReservationEvent] = []
        self.messages: list[tuple[int, str, NotificationType]] = []

    @property
    def provider_name(self) -> str:
        return "recording"

    def dispatch(self, event: ReservationEvent) -> None:
        self.events.append(event)

    def notify(
        self,
        user_id: int,
        message: str,
        kind: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        self.messages.append((user_id, message, kind))

    async def health_check(self) -> bool:
        return True


def _fast_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


async def create_user(
    phone: str,
    name: str,
    role: UserRole = UserRole.CUSTOMER,
    password: str = DEFAULT_PASSWORD,
) -> User:
    async with async_session_maker() as session:
        user = User(phone=phone, name=name, password_hash=_fast_hash(password), role=role)
        session.add(user)
        await session.commit()
        return user


async def create_table(
    number: int,
    capacity: int = 4,
    location: str = "Window",
    status: TableStatus = TableStatus.AVAILABLE,
) -> Table:
    async with async_session_maker() as session:
        table = Table(number=number, capacity=capacity, location=location, status=status)
        session.add(table)
        await session.commit()
        return table


async def fetch_table(table_id: int) -> Optional[Table]:
    async with async_session_maker() as session:
        return await session.get(Table, table_id)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.phone, user.role)}"}


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
async def db() -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections must not outlive this test's event loop
    await engine.dispose()


# =============================================================================
# SERVICES
# =============================================================================

@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def locks() -> TableLockRegistry:
    return TableLockRegistry()


@pytest.fixture
def reservation_engine(db, locks, dispatcher) -> ReservationEngine:
    return ReservationEngine(
        session_factory=async_session_maker,
        locks=locks,
        dispatcher=dispatcher,
        lock_timeout=5.0,
        transaction_timeout=10.0,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def table_service(db, locks) -> TableService:
    return TableService(session_factory=async_session_maker, locks=locks, lock_timeout=5.0)


# =============================================================================
# USERS AND TABLES
# =============================================================================

@pytest.fixture
async def customer(db) -> User:
    return await create_user(CUSTOMER_PHONE, "Sara")


@pytest.fixture
async def other_customer(db) -> User:
    return await create_user(OTHER_CUSTOMER_PHONE, "Ali")


@pytest.fixture
async def admin(db) -> User:
    return await create_user(ADMIN_PHONE, "Admin", role=UserRole.ADMIN)


@pytest.fixture
def customer_auth(customer) -> AuthContext:
    return AuthContext(user_id=customer.id, role=customer.role)


@pytest.fixture
def other_auth(other_customer) -> AuthContext:
    return AuthContext(user_id=other_customer.id, role=other_customer.role)


@pytest.fixture
def admin_auth(admin) -> AuthContext:
    return AuthContext(user_id=admin.id, role=admin.role)


@pytest.fixture
async def table(db) -> Table:
    return await create_table(number=1)


# =============================================================================
# HTTP CLIENT
# =============================================================================

@pytest.fixture
async def client(reservation_engine, table_service) -> AsyncIterator[httpx.AsyncClient]:
    """ASGI client with the booking services swapped for the test instances."""
    from restaurant_booking.main import app
    from restaurant_booking.services.reservations import get_reservation_engine
    from restaurant_booking.services.tables import get_table_service

    app.dependency_overrides[get_reservation_engine] = lambda: reservation_engine
    app.dependency_overrides[get_table_service] = lambda: table_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
