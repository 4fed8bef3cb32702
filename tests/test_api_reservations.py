import asyncio

from tests.conftest import FUTURE_DATE, PAST_DATE, auth_headers, create_table, fetch_table


def _booking(table_id, date=FUTURE_DATE, time="19:00"):
    return {"table_id": table_id, "date": date, "time": time}


async def test_two_guests_race_for_one_slot(client, customer, other_customer, table):
    first, second = await asyncio.gather(
        client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer)),
        client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(other_customer)),
    )

    responses = sorted([first, second], key=lambda r: r.status_code)
    winner, loser = responses
    assert winner.status_code == 200
    assert winner.json()["data"]["status"] == "pending"
    assert winner.json()["data"]["table"]["status"] == "reserved"
    assert loser.status_code == 409
    assert loser.json()["message"] == "Table is already reserved at this date and time"

    table_row = await fetch_table(table.id)
    assert table_row.status.value == "reserved"

    # The winner cancels: the table is free again
    winner_id = winner.json()["data"]["user_id"]
    owner = customer if winner_id == customer.id else other_customer
    reservation_id = winner.json()["data"]["id"]

    cancelled = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=auth_headers(owner))

    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"
    assert (await fetch_table(table.id)).status.value == "available"


async def test_reservation_payload_shape(client, customer, table):
    response = await client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer))

    data = response.json()["data"]
    assert data["date"] == FUTURE_DATE
    assert data["time"] == "19:00"
    assert data["user_id"] == customer.id
    assert data["table"]["number"] == table.number
    assert response.json()["message"] == "Reservation created successfully"


async def test_past_booking_is_rejected(client, customer, table):
    response = await client.post(
        "/api/v1/reservations", json=_booking(table.id, date=PAST_DATE), headers=auth_headers(customer)
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot make reservation in the past"


async def test_booking_body_is_validated(client, customer, table):
    response = await client.post(
        "/api/v1/reservations", json={"date": FUTURE_DATE, "time": "19:00"}, headers=auth_headers(customer)
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "table_id"


async def test_my_reservations_only_show_my_own(client, customer, other_customer, db):
    first = await create_table(number=1)
    second = await create_table(number=2)
    await client.post("/api/v1/reservations", json=_booking(first.id), headers=auth_headers(customer))
    theirs = await client.post(
        "/api/v1/reservations", json=_booking(second.id), headers=auth_headers(other_customer)
    )

    mine = await client.get("/api/v1/reservations/my", headers=auth_headers(customer))
    assert [r["table_id"] for r in mine.json()["data"]] == [first.id]

    other_id = theirs.json()["data"]["id"]
    peek = await client.get(f"/api/v1/reservations/{other_id}", headers=auth_headers(customer))
    assert peek.status_code == 404

    steal = await client.delete(f"/api/v1/reservations/{other_id}", headers=auth_headers(customer))
    assert steal.status_code == 404


async def test_my_reservations_filter_validation(client, customer, db):
    response = await client.get(
        "/api/v1/reservations/my", params={"status": "nope"}, headers=auth_headers(customer)
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid reservation status"


async def test_cancelling_twice_is_a_conflict(client, customer, table):
    created = await client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer))
    reservation_id = created.json()["data"]["id"]
    await client.delete(f"/api/v1/reservations/{reservation_id}", headers=auth_headers(customer))

    again = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=auth_headers(customer))

    assert again.status_code == 409
    assert again.json()["message"] == "Reservation is already cancelled"


async def test_admin_moves_reservation_through_its_lifecycle(client, admin, customer, table):
    created = await client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer))
    reservation_id = created.json()["data"]["id"]
    url = f"/api/v1/admin/reservations/{reservation_id}/status"

    confirmed = await client.put(url, json={"status": "confirmed"}, headers=auth_headers(admin))
    assert confirmed.status_code == 200
    assert confirmed.json()["data"]["status"] == "confirmed"

    completed = await client.put(url, json={"status": "completed"}, headers=auth_headers(admin))
    assert completed.json()["data"]["status"] == "completed"
    assert completed.json()["data"]["table"]["status"] == "available"

    reopened = await client.put(url, json={"status": "pending"}, headers=auth_headers(admin))
    assert reopened.status_code == 400
    assert reopened.json()["success"] is False

    cancel = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=auth_headers(customer))
    assert cancel.status_code == 400
    assert cancel.json()["message"] == "Cannot cancel completed reservation"


async def test_admin_lists_and_filters_reservations(client, admin, customer, table):
    await client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer))

    everything = await client.get("/api/v1/admin/reservations", headers=auth_headers(admin))
    assert len(everything.json()["data"]) == 1

    confirmed = await client.get(
        "/api/v1/admin/reservations", params={"status": "confirmed"}, headers=auth_headers(admin)
    )
    assert confirmed.json()["data"] == []

    by_user = await client.get(
        "/api/v1/admin/reservations", params={"user_id": customer.id}, headers=auth_headers(admin)
    )
    assert by_user.json()["data"][0]["user_id"] == customer.id


async def test_unknown_status_value(client, admin, customer, table):
    created = await client.post("/api/v1/reservations", json=_booking(table.id), headers=auth_headers(customer))
    reservation_id = created.json()["data"]["id"]

    response = await client.put(
        f"/api/v1/admin/reservations/{reservation_id}/status",
        json={"status": "seated"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid reservation status"


async def test_reservation_statuses(client):
    response = await client.get("/api/v1/reservations/statuses")

    assert [s["value"] for s in response.json()["data"]] == [
        "pending", "confirmed", "cancelled", "completed",
    ]
