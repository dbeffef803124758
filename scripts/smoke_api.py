#!/usr/bin/env python3
"""Smoke test for the booking API against a running server."""

import sys
from datetime import UTC, date, datetime, timedelta

import httpx


BASE_URL = "http://127.0.0.1:8001"


def next_weekday() -> date:
    day = date.today() + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


def check_slots(day: date) -> list[str]:
    print("=" * 60)
    print("Testing GET /api/v1/providers/{id}/slots")
    print("=" * 60)

    response = httpx.get(
        f"{BASE_URL}/api/v1/providers/smoke_provider/slots",
        params={"date": day.isoformat(), "service_id": "haircut"},
        timeout=10.0,
    )
    response.raise_for_status()
    slots = response.json()["slots"]
    print(f"✅ {len(slots)} slots on {day}: {', '.join(slots[:6])}...")
    return slots


def check_create_and_conflict(day: date, slot: str) -> str | None:
    print("\n" + "=" * 60)
    print("Testing POST /api/v1/bookings")
    print("=" * 60)

    hour, minute = (int(part) for part in slot.split(":"))
    start = datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)
    payload = {
        "customer_id": "smoke_customer",
        "provider_id": "smoke_provider",
        "service_id": "haircut",
        "start_time": start.isoformat(),
    }

    try:
        response = httpx.post(f"{BASE_URL}/api/v1/bookings", json=payload, timeout=10.0)
        response.raise_for_status()
        booking = response.json()
        print(f"✅ Created booking {booking['id']} at {booking['start_time']}")
    except httpx.HTTPStatusError as e:
        print(f"❌ HTTP Error: {e.response.status_code}")
        print(f"Response: {e.response.text}")
        return None

    duplicate = httpx.post(f"{BASE_URL}/api/v1/bookings", json=payload, timeout=10.0)
    if duplicate.status_code == 409:
        print(f"✅ Duplicate rejected: {duplicate.json()['detail']['message']}")
    else:
        print(f"❌ Expected 409 for duplicate, got {duplicate.status_code}")
    return booking["id"]


def check_lifecycle(booking_id: str) -> None:
    print("\n" + "=" * 60)
    print("Testing PUT /api/v1/bookings/{id}/status")
    print("=" * 60)

    url = f"{BASE_URL}/api/v1/bookings/{booking_id}/status"
    for body in ({"new_status": "confirmed"}, {"new_status": "cancelled", "cancellation_reason": "smoke test"}):
        response = httpx.put(url, json=body, headers={"X-Changed-By": "smoke"}, timeout=10.0)
        if response.status_code == 200:
            data = response.json()
            print(f"✅ {data['previous_status']} -> {data['current_status']}")
        else:
            print(f"❌ {body['new_status']}: {response.status_code} {response.text}")

    history = httpx.get(f"{url}/history", timeout=10.0).json()
    print(f"\nHistory ({len(history)} entries):")
    for entry in history:
        print(f"  {entry['changed_at']}  {entry['from_status']} -> {entry['to_status']} by {entry['changed_by']}")


def main():
    print("\n🚀 Testing Booking API\n")

    try:
        httpx.get(f"{BASE_URL}/health", timeout=5.0)
        print("✅ Server is running\n")
    except httpx.HTTPError:
        print("❌ Server is not running!")
        print("   Please start it with: uvicorn app.main:app --reload --port 8001")
        sys.exit(1)

    day = next_weekday()
    slots = check_slots(day)
    if not slots:
        print("❌ No slots available, nothing else to check")
        sys.exit(1)

    booking_id = check_create_and_conflict(day, slots[0])
    if booking_id:
        check_lifecycle(booking_id)

    print("\n" + "=" * 60)
    print("✅ Smoke test complete!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
