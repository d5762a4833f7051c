"""
Booking/ledger reconciliation.

Checks that every booking the storefronts consider confirmed still has a
BOOKING block. Mismatches are reported for an operator; no block is ever
created here.
"""

import logging
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.exceptions import LedgerInconsistencyError
from tourfleet.app.models.availability_block import VehicleAvailabilityBlock
from tourfleet.app.models.availability_enums import BlockType

logger = logging.getLogger("tourfleet")


async def find_missing_bookings(db: AsyncSession, booking_ids: Iterable[int]) -> List[int]:
    """Confirmed booking ids with no BOOKING block in the ledger."""
    wanted = sorted(set(booking_ids))
    if not wanted:
        return []

    result = await db.execute(
        select(VehicleAvailabilityBlock.booking_id).where(
            VehicleAvailabilityBlock.booking_id.in_(wanted),
            VehicleAvailabilityBlock.block_type == BlockType.BOOKING,
        ).distinct()
    )
    present = set(result.scalars().all())
    return [booking_id for booking_id in wanted if booking_id not in present]


async def reconcile_bookings(db: AsyncSession, booking_ids: Iterable[int]) -> int:
    """
    Verify confirmed bookings against the ledger.

    Returns:
        Number of bookings checked

    Raises:
        LedgerInconsistencyError: If any booking has no block
    """
    booking_ids = list(booking_ids)
    missing = await find_missing_bookings(db, booking_ids)
    if missing:
        logger.error("Confirmed bookings missing from availability ledger",
                     extra={"missing_booking_ids": missing})
        raise LedgerInconsistencyError(missing)
    return len(set(booking_ids))
