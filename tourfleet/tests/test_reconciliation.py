"""
Reconciliation tests.

Confirmed bookings must each have a BOOKING block; nothing is repaired.
"""

import pytest

from tourfleet.app.core.exceptions import LedgerInconsistencyError
from tourfleet.app.services.reconciliation import find_missing_bookings, reconcile_bookings


@pytest.mark.asyncio
async def test_consistent_ledger(db_session, service, make_vehicle, make_draft):
    await make_vehicle()
    for booking_id, start, end in [(1, "09:00", "11:00"), (2, "13:00", "15:00")]:
        hold = await service.request_hold(make_draft(start=start, end=end))
        await service.commit(hold.token, booking_id=booking_id)

    assert await reconcile_bookings(db_session, [1, 2, 2]) == 2


@pytest.mark.asyncio
async def test_missing_booking_is_reported_not_fabricated(db_session, service, make_vehicle, make_draft):
    """A held-but-uncommitted or cancelled booking shows up as missing."""
    await make_vehicle()
    hold = await service.request_hold(make_draft(start="09:00", end="11:00"))
    await service.commit(hold.token, booking_id=1)
    await service.request_hold(make_draft(start="13:00", end="15:00"))
    await service.cancel(booking_id=1)

    assert await find_missing_bookings(db_session, [1, 3]) == [1, 3]
    with pytest.raises(LedgerInconsistencyError) as exc_info:
        await reconcile_bookings(db_session, [3, 1])

    assert exc_info.value.details["missing_booking_ids"] == [1, 3]
    assert len(await service.ledger.blocks_for_booking(1)) == 0
