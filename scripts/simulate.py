"""
Double-Booking Drill

Fires many concurrent booking requests for the same table and slot at a
running API and checks that exactly one of them wins.

Run from project root (API must be up, see scripts/seed.py):
    python scripts/simulate.py --table-id 1 --guests 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import date, timedelta
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8080/api/v1"
TOTAL_GUESTS = 30
DEFAULT_PASSWORD = "drill-pass-123"

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]


async def register_guest(client: httpx.AsyncClient, guest_num: int) -> str:
    """Sign up a throwaway customer and return its token."""
    phone = f"09{random.randint(100000000, 999999999)}"
    response = await client.post(
        f"{API_BASE_URL}/auth/signup",
        json={
            "phone": phone,
            "password": DEFAULT_PASSWORD,
            "name": f"{random.choice(FIRST_NAMES)} {guest_num}",
        },
        timeout=30.0,
    )
    response.raise_for_status()
    return response.json()["data"]["token"]


async def book(
    client: httpx.AsyncClient,
    token: str,
    guest_num: int,
    table_id: int,
    slot_date: str,
    slot_time: str,
) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/reservations",
            json={"table_id": table_id, "date": slot_date, "time": slot_time},
            headers={"Authorization": f"Bearer {token}"},
            timeout=30.0,
        )
        body = response.json()
        return {
            "guest_num": guest_num,
            "status_code": response.status_code,
            "message": body.get("message"),
            "reservation_id": (body.get("data") or {}).get("id"),
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {
            "guest_num": guest_num,
            "status_code": None,
            "message": str(e)[:100],
            "reservation_id": None,
            "time": round(time.time() - start_time, 3),
        }


async def run_drill(table_id: int, num_guests: int, slot_date: str, slot_time: str) -> bool:
    print("=" * 70)
    print("DOUBLE-BOOKING DRILL")
    print("=" * 70)
    print(f"Guests: {num_guests}")
    print(f"Target: {API_BASE_URL}")
    print(f"Slot: table {table_id}, {slot_date} {slot_time}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"\nHealth: {health.json().get('status')}")

        tokens = await asyncio.gather(*(register_guest(client, i + 1) for i in range(num_guests)))
        print(f"Registered {len(tokens)} guests, firing bookings...\n")

        start_time = time.time()
        results = await asyncio.gather(
            *(
                book(client, token, i + 1, table_id, slot_date, slot_time)
                for i, token in enumerate(tokens)
            )
        )
        total_time = round(time.time() - start_time, 2)

    winners = [r for r in results if r["status_code"] == 200]
    conflicts = [r for r in results if r["status_code"] == 409]
    other = [r for r in results if r["status_code"] not in (200, 409)]

    print("=" * 70)
    print("RESULTS")
    print("=" * 70)
    print(f"Booked:    {len(winners)}")
    print(f"Conflicts: {len(conflicts)}")
    print(f"Other:     {len(other)}")
    print(f"Total Time: {total_time}s")

    if results:
        print(f"Slowest response: {max(r['time'] for r in results)}s")
    for r in other[:5]:
        print(f"   Guest #{r['guest_num']}: {r['status_code']} {r['message']}")

    passed = len(winners) <= 1 and not other
    if winners:
        print(f"\nWinner: guest #{winners[0]['guest_num']} (reservation #{winners[0]['reservation_id']})")
    print("\nPASS: no double booking" if passed else "\nFAIL: slot booked more than once or errors seen")
    return passed


def main() -> None:
    tomorrow = (date.today() + timedelta(days=1)).isoformat()

    parser = argparse.ArgumentParser(description="Concurrent double-booking drill")
    parser.add_argument("--table-id", type=int, default=1)
    parser.add_argument("--guests", type=int, default=TOTAL_GUESTS)
    parser.add_argument("--date", default=tomorrow, help="YYYY-MM-DD")
    parser.add_argument("--time", default="19:00", help="HH:MM")
    args = parser.parse_args()

    passed = asyncio.run(run_drill(args.table_id, args.guests, args.date, args.time))
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
