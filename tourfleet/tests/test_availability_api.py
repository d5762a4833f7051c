"""
Integration tests for the allocation API.

Drives the HTTP surface end to end and checks the error envelope and
status codes of each failure class.
"""

import pytest

from conftest import TOUR_DAY

DAY = TOUR_DAY.isoformat()


@pytest.fixture
async def vehicle_id(client):
    response = await client.post("/v1/vehicles", json={
        "vehicle_number": "WA-1001",
        "name": "Sprinter 14",
        "vehicle_type": "Sprinter",
        "capacity": 14,
    })
    assert response.status_code == 201
    return response.json()["id"]


def _tour(start="10:00", end="12:00", brand_id=1, party_size=4, **extra):
    return {
        "brand_id": brand_id,
        "tour_date": DAY,
        "start_time": start,
        "end_time": end,
        "party_size": party_size,
        **extra,
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["cache"] == "up"


@pytest.mark.asyncio
async def test_hold_commit_flow(client, vehicle_id):
    """TEST 1: check -> hold -> commit -> schedule."""
    check = await client.post("/v1/availability/check", json=_tour())
    assert check.status_code == 200
    assert check.json()["available"] is True
    assert check.json()["vehicles"][0]["vehicle_id"] == vehicle_id

    hold = await client.post("/v1/holds", json=_tour(), headers={"X-Actor-ID": "17"})
    assert hold.status_code == 201
    token = hold.json()["hold_token"]

    commit = await client.post(f"/v1/holds/{token}/commit", json={"booking_id": 501, "driver_id": 3})
    assert commit.status_code == 200
    assert commit.json()["blocks"][0]["block_type"] == "BOOKING"

    schedule = await client.get(f"/v1/vehicles/{vehicle_id}/schedule", params={"schedule_date": DAY})
    assert schedule.status_code == 200
    assert [b["booking_id"] for b in schedule.json()["blocks"]] == [501]

    calendar = await client.get("/v1/schedule", params={"start_date": DAY, "end_date": DAY})
    assert len(calendar.json()["blocks"]) == 1


@pytest.mark.asyncio
async def test_conflict_is_409(client, vehicle_id):
    """TEST 2: ConflictError maps to 409 with the standard envelope."""
    first = await client.post("/v1/holds", json=_tour())
    assert first.status_code == 201

    second = await client.post("/v1/holds", json=_tour(start="11:00", end="13:00", brand_id=2))
    assert second.status_code == 409
    body = second.json()
    assert body["error_code"] == "ERR_ALLOC_CONFLICT"
    assert set(body) == {"error_code", "message", "details"}


@pytest.mark.asyncio
async def test_preview_cache_invalidated_on_hold(client, vehicle_id, mock_redis):
    """TEST 3: A cached 'available' preview is dropped once the slot is held."""
    before = await client.post("/v1/availability/check", json=_tour())
    assert before.json()["available"] is True
    assert any(key.startswith("availability:") for key in mock_redis.store)

    await client.post("/v1/holds", json=_tour())

    after = await client.post("/v1/availability/check", json=_tour())
    assert after.json()["available"] is False
    assert after.json()["reasons"] == ["fully_booked"]


@pytest.mark.asyncio
async def test_compliance_violation_is_422(client, vehicle_id, hos_client):
    hos_client.remaining_hours[8] = 0.5
    hold = await client.post("/v1/holds", json=_tour(start="10:00", end="16:00"))
    token = hold.json()["hold_token"]

    response = await client.post(f"/v1/holds/{token}/commit", json={"booking_id": 9, "driver_id": 8})

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_ALLOC_COMPLIANCE"
    assert response.json()["details"]["violations"][0]["type"] == "hos_insufficient_hours"


@pytest.mark.asyncio
async def test_unknown_hold_is_404_and_release_is_idempotent(client, vehicle_id):
    missing = await client.post("/v1/holds/nope/commit", json={"booking_id": 1})
    assert missing.status_code == 404

    hold = await client.post("/v1/holds", json=_tour())
    token = hold.json()["hold_token"]
    assert (await client.delete(f"/v1/holds/{token}")).json() == {"released": True}
    assert (await client.delete(f"/v1/holds/{token}")).json() == {"released": False}


@pytest.mark.asyncio
async def test_invalid_request_is_400(client, vehicle_id):
    """Requests the service can't serve at all are 400; malformed bodies are 422."""
    outside = await client.post("/v1/holds", json=_tour(start="06:00", end="07:00"))
    assert outside.status_code == 400
    assert outside.json()["details"]["reasons"] == ["outside_operating_hours"]

    malformed = await client.post("/v1/holds", json=_tour(party_size=0))
    assert malformed.status_code == 422
    assert malformed.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_reassign_and_release_booking(client, vehicle_id):
    spare = await client.post("/v1/vehicles", json={
        "vehicle_number": "WA-1002", "name": "Sprinter 10", "capacity": 10,
    })
    spare_id = spare.json()["id"]
    hold = await client.post("/v1/holds", json=_tour(candidate_vehicle_ids=[vehicle_id]))
    await client.post(f"/v1/holds/{hold.json()['hold_token']}/commit", json={"booking_id": 77})

    moved = await client.post("/v1/bookings/77/reassign-vehicle", json={"new_vehicle_id": spare_id})
    assert moved.status_code == 200
    assert moved.json()["blocks"][0]["vehicle_id"] == spare_id

    driver = await client.post("/v1/bookings/77/assign-driver", json={"driver_id": 4})
    assert driver.status_code == 200
    assert driver.json()["assignments"][0]["vehicle_id"] == spare_id

    released = await client.delete("/v1/bookings/77/allocation")
    assert released.json() == {"released": True}
    assert (await client.post("/v1/bookings/77/reassign-vehicle", json={"new_vehicle_id": vehicle_id})).status_code == 404


@pytest.mark.asyncio
async def test_maintenance_endpoints(client, vehicle_id):
    created = await client.post("/v1/maintenance-blocks", json={
        "vehicle_id": vehicle_id,
        "block_date": DAY,
        "start_time": "08:00",
        "end_time": "12:00",
        "notes": "Tyre rotation",
    })
    assert created.status_code == 201
    block_id = created.json()["blocks"][0]["id"]

    blocked = await client.post("/v1/holds", json=_tour(start="09:00", end="10:00"))
    assert blocked.status_code == 409

    assert (await client.delete(f"/v1/maintenance-blocks/{block_id}")).status_code == 204
    assert (await client.post("/v1/holds", json=_tour(start="09:00", end="10:00"))).status_code == 201


@pytest.mark.asyncio
async def test_fleet_admin(client, vehicle_id):
    dedicated = await client.post("/v1/vehicles", json={
        "vehicle_number": "WA-2001", "name": "Limo", "capacity": 6,
        "sharing_mode": "DEDICATED", "home_brand_id": 2,
    })
    assert dedicated.status_code == 201

    bad_scope = await client.post("/v1/vehicles", json={
        "vehicle_number": "WA-2002", "name": "Limo 2", "capacity": 6, "sharing_mode": "DEDICATED",
    })
    assert bad_scope.status_code == 400

    duplicate = await client.post("/v1/vehicles", json={"vehicle_number": "WA-1001", "name": "Copy", "capacity": 6})
    assert duplicate.status_code == 400

    brand_one = await client.get("/v1/vehicles", params={"brand_id": 1})
    assert [v["id"] for v in brand_one.json()["vehicles"]] == [vehicle_id]

    updated = await client.patch(f"/v1/vehicles/{vehicle_id}", json={"capacity": 12})
    assert updated.json()["capacity"] == 12

    retired = await client.post(f"/v1/vehicles/{vehicle_id}/deactivate")
    assert retired.json()["is_active"] is False
    assert (await client.post("/v1/holds", json=_tour(brand_id=1))).status_code == 409


@pytest.mark.asyncio
async def test_blackout_and_slots(client, vehicle_id):
    slots = await client.get("/v1/availability/slots", params={
        "brand_id": 1, "tour_date": DAY, "duration_hours": 4, "party_size": 2,
    })
    assert slots.status_code == 200
    assert slots.json()["slots"][0]["start_time"] == "08:00:00"
    assert all(s["available"] for s in slots.json()["slots"])

    blackout = await client.post("/v1/blackout-dates", json={"blackout_date": DAY, "reason": "Festival"})
    assert blackout.status_code == 201

    closed = await client.get("/v1/availability/slots", params={
        "brand_id": 1, "tour_date": DAY, "duration_hours": 4, "party_size": 2,
    })
    assert closed.json()["slots"] == []


@pytest.mark.asyncio
async def test_admin_sweep_and_reconcile(client, vehicle_id):
    await client.post("/v1/holds", json=_tour())

    sweep = await client.post("/v1/admin/holds/sweep", json={"as_of": f"{DAY}T23:00:00"})
    assert sweep.status_code == 200
    assert sweep.json()["released_blocks"] == 1

    reconcile = await client.post("/v1/admin/reconcile", json={"booking_ids": [404]})
    assert reconcile.status_code == 500
    assert reconcile.json()["details"]["missing_booking_ids"] == [404]
