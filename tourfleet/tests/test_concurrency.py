"""
Concurrency Tests.

Two storefronts race for the same vehicle and interval. The loser works
from a stale availability preview, so only the storage constraint stands
between it and a double booking. Releases race too: a block another
session already removed is skipped, not reported as missing.

These run on SQLite, where overlap is enforced by triggers. The Postgres
exclusion constraint path (SQLSTATE 23P01 mapped to ConflictError) is not
exercised here.
"""

import pytest
from unittest.mock import AsyncMock

from tourfleet.app.core.exceptions import ConflictError
from tourfleet.app.models.availability_enums import AllocationState
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.audit import AuditAction, get_audit_trail
from tourfleet.app.services.availability_ledger import AvailabilityLedger

from conftest import TOUR_DAY


@pytest.fixture
async def rival_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def rival(rival_session, policy, clock, mocker):
    """Second storefront whose preview still shows every vehicle free."""
    rival = AllocationService(rival_session, policy, clock=clock)
    mocker.patch.object(rival.ledger, "find_conflicts", new=AsyncMock(return_value=[]))
    return rival


@pytest.mark.asyncio
async def test_only_vehicle_exactly_one_hold_wins(service, rival, make_vehicle, make_draft):
    """TEST 1: Same interval, only vehicle: the second hold gets ConflictError."""
    await make_vehicle()
    draft = make_draft(start="10:00", end="12:00")

    winner = await service.request_hold(draft)
    with pytest.raises(ConflictError) as exc_info:
        await rival.request_hold(make_draft(brand_id=2, start="10:00", end="12:00"))

    assert winner.state == AllocationState.HELD
    assert exc_info.value.details["vehicle_ids"] == [winner.vehicle_id]
    assert len(await service.ledger.day_schedule(TOUR_DAY)) == 1


@pytest.mark.asyncio
async def test_loser_falls_back_to_next_vehicle(service, rival, make_vehicle, make_draft):
    """TEST 2: With a second vehicle the loser is held there on its second attempt."""
    first = (await make_vehicle(capacity=8)).id
    second = (await make_vehicle(capacity=14)).id

    winner = await service.request_hold(make_draft())
    fallback = await rival.request_hold(make_draft(brand_id=2))

    assert winner.vehicle_id == first
    assert fallback.vehicle_id == second
    assert fallback.attempts == 2


@pytest.mark.asyncio
async def test_retries_are_bounded(service, rival, make_vehicle, make_draft):
    """TEST 3: A stale preview never causes more than max_hold_attempts inserts."""
    for _ in range(4):
        await make_vehicle()
    for _ in range(4):
        await service.request_hold(make_draft())

    with pytest.raises(ConflictError) as exc_info:
        await rival.request_hold(make_draft(brand_id=3))

    assert exc_info.value.details["attempts"] == 3
    assert len(await service.ledger.day_schedule(TOUR_DAY)) == 4


@pytest.mark.asyncio
async def test_back_to_back_race_both_win(service, rival, make_vehicle, make_draft):
    """TEST 4: Adjacent intervals never conflict, even from a stale preview."""
    vehicle_id = (await make_vehicle()).id

    morning = await service.request_hold(make_draft(start="09:00", end="12:00"))
    afternoon = await rival.request_hold(make_draft(brand_id=2, start="12:00", end="15:00"))

    assert morning.vehicle_id == afternoon.vehicle_id == vehicle_id
    assert afternoon.attempts == 1


@pytest.mark.asyncio
async def test_sweep_skips_holds_purged_meanwhile(service, rival_session, make_vehicle, make_draft, clock, mocker,
                                                  db_session):
    """TEST 5: Holds purged by another session between listing and delete are skipped."""
    first = (await make_vehicle()).id
    second = (await make_vehicle()).id
    await service.request_hold(make_draft(), [first])
    kept = await service.request_hold(make_draft(), [second])
    clock.advance(minutes=20)

    list_expired = service.ledger.expired_holds

    async def purge_after_listing(now):
        blocks = await list_expired(now)
        await AvailabilityLedger(rival_session).purge_expired_holds(first, TOUR_DAY, now)
        await rival_session.commit()
        return blocks

    mocker.patch.object(service.ledger, "expired_holds", new=AsyncMock(side_effect=purge_after_listing))

    assert await service.sweep_expired_holds() == 1

    trail = await get_audit_trail(db_session, action=AuditAction.HOLD_EXPIRED)
    assert [entry.meta_data["hold_token"] for entry in trail] == [kept.token]
    assert await service.ledger.day_schedule(TOUR_DAY) == []


@pytest.mark.asyncio
async def test_cancel_of_hold_released_meanwhile(service, rival, make_vehicle, make_draft, mocker, db_session):
    """TEST 6: Cancelling a hold another session just released returns False."""
    await make_vehicle()
    hold = await service.request_hold(make_draft())

    lookup = service.ledger.get_by_hold_token

    async def release_after_lookup(token):
        blocks = await lookup(token)
        assert await rival.cancel(hold_token=token) is True
        return blocks

    mocker.patch.object(service.ledger, "get_by_hold_token", new=AsyncMock(side_effect=release_after_lookup))

    assert await service.cancel(hold_token=hold.token) is False
    assert len(await get_audit_trail(db_session, action=AuditAction.HOLD_RELEASED)) == 1
