import asyncio
from datetime import date, time

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from restaurant_booking.core.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    TransactionTimeoutError,
    ValidationError,
)
from restaurant_booking.core.security import AuthContext
from restaurant_booking.database import async_session_maker
from restaurant_booking.models import Reservation, ReservationStatus, TableStatus
from restaurant_booking.schemas import TableUpdate
from restaurant_booking.services import reservations as reservations_module
from restaurant_booking.services.notifications import ReservationEventKind
from restaurant_booking.services.reservations import SLOT_TAKEN_MESSAGE, ReservationEngine
from tests.conftest import (
    FIXED_NOW,
    FUTURE_DATE,
    PAST_DATE,
    create_table,
    create_user,
    fetch_table,
)


async def _reservation_count() -> int:
    async with async_session_maker() as session:
        return (await session.execute(select(func.count(Reservation.id)))).scalar()


async def _stored_status(reservation_id: int) -> ReservationStatus:
    async with async_session_maker() as session:
        return (await session.get(Reservation, reservation_id)).status


# =============================================================================
# CREATE
# =============================================================================

async def test_concurrent_creates_for_one_slot_book_exactly_once(reservation_engine, dispatcher, table):
    users = [await create_user(f"0912000{i:04d}", f"Guest {i}") for i in range(8)]

    results = await asyncio.gather(
        *(
            reservation_engine.create(AuthContext(u.id, u.role), table.id, FUTURE_DATE, "19:00")
            for u in users
        ),
        return_exceptions=True,
    )

    booked = [r for r in results if isinstance(r, Reservation)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(booked) == 1
    assert len(conflicts) == len(users) - 1
    assert all(c.message == SLOT_TAKEN_MESSAGE for c in conflicts)

    assert await _reservation_count() == 1
    assert (await fetch_table(table.id)).status == TableStatus.RESERVED
    assert [e.kind for e in dispatcher.events] == [ReservationEventKind.CREATED]
    assert not reservation_engine.locks.is_locked(table.id)


async def test_create_returns_pending_reservation_with_table(reservation_engine, dispatcher, customer, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    assert reservation.status == ReservationStatus.PENDING
    assert reservation.user_id == customer.id
    assert reservation.date == date(2030, 1, 1)
    assert reservation.time == time(19, 0)
    assert reservation.table.number == table.number
    assert reservation.table.status == TableStatus.RESERVED

    event = dispatcher.events[0]
    assert event.reservation_id == reservation.id
    assert event.user_name == "Sara"
    assert event.time == "19:00"


@pytest.mark.parametrize(
    "slot_date,slot_time",
    [
        (PAST_DATE, "23:59"),
        (FIXED_NOW.date().isoformat(), FIXED_NOW.strftime("%H:%M")),
        (FIXED_NOW.date().isoformat(), "11:59"),
    ],
)
async def test_past_slots_are_rejected(reservation_engine, customer_auth, table, slot_date, slot_time):
    with pytest.raises(ValidationError, match="Cannot make reservation in the past"):
        await reservation_engine.create(customer_auth, table.id, slot_date, slot_time)

    assert await _reservation_count() == 0
    assert (await fetch_table(table.id)).status == TableStatus.AVAILABLE


@pytest.mark.parametrize(
    "slot_date,slot_time,message",
    [
        ("01/01/2030", "19:00", "Invalid date format"),
        ("2030-02-30", "19:00", "Invalid date format"),
        (FUTURE_DATE, "7pm", "Invalid time format"),
        (FUTURE_DATE, "25:00", "Invalid time format"),
    ],
)
async def test_malformed_slots_are_rejected(reservation_engine, customer_auth, table, slot_date, slot_time, message):
    with pytest.raises(ValidationError, match=message):
        await reservation_engine.create(customer_auth, table.id, slot_date, slot_time)


async def test_create_on_missing_table(reservation_engine, customer_auth):
    with pytest.raises(NotFoundError, match="Table not found"):
        await reservation_engine.create(customer_auth, 999, FUTURE_DATE, "19:00")

    # Unknown ids never get a lock entry
    assert len(reservation_engine.locks) == 0


async def test_table_edits_on_missing_table_register_no_lock(table_service, locks):
    with pytest.raises(NotFoundError):
        await table_service.update(999, TableUpdate(capacity=2))
    with pytest.raises(NotFoundError):
        await table_service.delete(998)

    assert len(locks) == 0


@pytest.mark.parametrize("status", [TableStatus.MAINTENANCE, TableStatus.OCCUPIED])
async def test_create_on_unavailable_table(reservation_engine, customer_auth, db, status):
    table = await create_table(number=5, status=status)

    with pytest.raises(ConflictError, match="Table is not available"):
        await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    assert (await fetch_table(table.id)).status == status


async def test_cancelled_slot_can_be_booked_again(reservation_engine, customer_auth, other_auth, table):
    first = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")
    await reservation_engine.cancel(customer_auth, first.id)

    second = await reservation_engine.create(other_auth, table.id, FUTURE_DATE, "19:00")

    assert second.id != first.id
    assert (await fetch_table(table.id)).status == TableStatus.RESERVED


async def test_store_rejects_a_second_active_reservation_for_a_slot(customer, table):
    async with async_session_maker() as session:
        session.add_all([
            Reservation(user_id=customer.id, table_id=table.id, date=date(2030, 1, 1),
                        time=time(19, 0), status=ReservationStatus.PENDING),
            Reservation(user_id=customer.id, table_id=table.id, date=date(2030, 1, 1),
                        time=time(19, 0), status=ReservationStatus.CONFIRMED),
        ])
        with pytest.raises(IntegrityError):
            await session.commit()


# =============================================================================
# LOCK RELEASE AND TIMEOUTS
# =============================================================================

async def test_failure_inside_transaction_rolls_back_and_releases_lock(
    reservation_engine, customer_auth, table, monkeypatch
):
    async def broken(session, table_obj):
        raise RuntimeError("store blew up")

    monkeypatch.setattr(reservations_module, "recompute_table_status", broken)

    with pytest.raises(RuntimeError):
        await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    assert not reservation_engine.locks.is_locked(table.id)
    assert await _reservation_count() == 0

    monkeypatch.undo()
    reservation = await asyncio.wait_for(
        reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00"), timeout=5
    )
    assert reservation.status == ReservationStatus.PENDING


async def test_busy_table_lock_times_out(customer_auth, table, locks, dispatcher):
    engine = ReservationEngine(
        session_factory=async_session_maker,
        locks=locks,
        dispatcher=dispatcher,
        lock_timeout=0.05,
        transaction_timeout=5.0,
        clock=lambda: FIXED_NOW,
    )

    async with locks.hold(table.id, timeout=1):
        with pytest.raises(TransactionTimeoutError):
            await engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    assert await _reservation_count() == 0
    assert dispatcher.events == []


async def test_slow_transaction_times_out_and_releases_lock(
    customer_auth, table, locks, dispatcher, monkeypatch
):
    engine = ReservationEngine(
        session_factory=async_session_maker,
        locks=locks,
        dispatcher=dispatcher,
        lock_timeout=1.0,
        transaction_timeout=0.1,
        clock=lambda: FIXED_NOW,
    )

    async def stalled(session, table_obj):
        await asyncio.sleep(5)

    monkeypatch.setattr(reservations_module, "recompute_table_status", stalled)

    with pytest.raises(TransactionTimeoutError):
        await engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    assert not locks.is_locked(table.id)
    assert dispatcher.events == []


# =============================================================================
# CANCEL
# =============================================================================

async def test_cancel_frees_the_table(reservation_engine, dispatcher, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    cancelled = await reservation_engine.cancel(customer_auth, reservation.id)

    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.table.status == TableStatus.AVAILABLE
    assert (await fetch_table(table.id)).status == TableStatus.AVAILABLE
    assert dispatcher.events[-1].kind == ReservationEventKind.CANCELLED


async def test_cancel_twice_is_reported(reservation_engine, dispatcher, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")
    await reservation_engine.cancel(customer_auth, reservation.id)

    with pytest.raises(ConflictError, match="already cancelled"):
        await reservation_engine.cancel(customer_auth, reservation.id)

    assert len(dispatcher.events) == 2


async def test_customer_cannot_touch_someone_elses_reservation(
    reservation_engine, customer_auth, other_auth, table
):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    with pytest.raises(NotFoundError):
        await reservation_engine.cancel(other_auth, reservation.id)
    async with async_session_maker() as session:
        with pytest.raises(NotFoundError):
            await reservation_engine.get(session, other_auth, reservation.id)

    assert await _stored_status(reservation.id) == ReservationStatus.PENDING


async def test_admin_can_cancel_any_reservation(reservation_engine, customer_auth, admin_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    cancelled = await reservation_engine.cancel(admin_auth, reservation.id)

    assert cancelled.status == ReservationStatus.CANCELLED


async def test_cancel_missing_reservation(reservation_engine, customer_auth):
    with pytest.raises(NotFoundError, match="Reservation not found"):
        await reservation_engine.cancel(customer_auth, 12345)


# =============================================================================
# STATUS UPDATES
# =============================================================================

async def test_status_lifecycle_keeps_table_status_in_step(reservation_engine, dispatcher, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    confirmed = await reservation_engine.update_status(reservation.id, "confirmed")
    assert confirmed.status == ReservationStatus.CONFIRMED
    assert (await fetch_table(table.id)).status == TableStatus.RESERVED

    completed = await reservation_engine.update_status(reservation.id, "completed")
    assert completed.status == ReservationStatus.COMPLETED
    assert (await fetch_table(table.id)).status == TableStatus.AVAILABLE

    kinds = [e.kind for e in dispatcher.events]
    assert kinds == [
        ReservationEventKind.CREATED,
        ReservationEventKind.STATUS_UPDATED,
        ReservationEventKind.STATUS_UPDATED,
    ]


async def test_repeating_the_current_status_is_silent(reservation_engine, dispatcher, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    same = await reservation_engine.update_status(reservation.id, "pending")

    assert same.status == ReservationStatus.PENDING
    assert len(dispatcher.events) == 1


@pytest.mark.parametrize("terminal", ["cancelled", "completed"])
async def test_terminal_reservations_never_change(reservation_engine, dispatcher, customer_auth, table, terminal):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")
    await reservation_engine.update_status(reservation.id, terminal)
    events_before = len(dispatcher.events)

    for target in ("pending", "confirmed", "cancelled", "completed"):
        with pytest.raises(StateError):
            await reservation_engine.update_status(reservation.id, target)
    with pytest.raises((ConflictError, StateError)):
        await reservation_engine.cancel(customer_auth, reservation.id)

    assert await _stored_status(reservation.id) == ReservationStatus(terminal)
    assert len(dispatcher.events) == events_before
    assert (await fetch_table(table.id)).status == TableStatus.AVAILABLE


async def test_unknown_status_is_a_validation_error(reservation_engine, customer_auth, table):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")

    with pytest.raises(ValidationError):
        await reservation_engine.update_status(reservation.id, "seated")


async def test_update_status_of_missing_reservation(reservation_engine):
    with pytest.raises(NotFoundError):
        await reservation_engine.update_status(404, "confirmed")


async def test_cancel_leaves_maintenance_table_alone(reservation_engine, customer_auth, table, table_service):
    reservation = await reservation_engine.create(customer_auth, table.id, FUTURE_DATE, "19:00")
    await table_service.update(table.id, TableUpdate(status=TableStatus.MAINTENANCE))

    await reservation_engine.cancel(customer_auth, reservation.id)

    assert (await fetch_table(table.id)).status == TableStatus.MAINTENANCE


# =============================================================================
# READS
# =============================================================================

async def test_listing_filters_by_owner_status_and_date(reservation_engine, customer_auth, other_auth, admin_auth, db):
    first = await create_table(number=1)
    second = await create_table(number=2)

    mine = await reservation_engine.create(customer_auth, first.id, FUTURE_DATE, "19:00")
    theirs = await reservation_engine.create(other_auth, second.id, "2030-01-02", "20:00")
    await reservation_engine.update_status(theirs.id, "confirmed")

    async with async_session_maker() as session:
        own = await reservation_engine.list_for_user(session, customer_auth)
        assert [r.id for r in own] == [mine.id]

        everything = await reservation_engine.list_all(session)
        # Newest slot first
        assert [r.id for r in everything] == [theirs.id, mine.id]

        confirmed = await reservation_engine.list_all(session, status="confirmed")
        assert [r.id for r in confirmed] == [theirs.id]

        on_day = await reservation_engine.list_all(session, on_date=FUTURE_DATE)
        assert [r.id for r in on_day] == [mine.id]

        by_table = await reservation_engine.list_all(session, table_id=second.id)
        assert [r.table.number for r in by_table] == [2]

        fetched = await reservation_engine.get(session, admin_auth, mine.id)
        assert fetched.user_id == customer_auth.user_id

        with pytest.raises(ValidationError):
            await reservation_engine.list_all(session, on_date="tomorrow")
