"""
Availability ledger.

Single source of truth for what is allocated or blocked on each vehicle.
The storage constraint on vehicle_availability_blocks is the only
authoritative overlap check; find_conflicts is a best-effort preview.
The ledger never retries.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, delete, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.exceptions import (
    AllocationValidationError, ConflictError, ExpiredError, NotFoundError,
)
from tourfleet.app.models.availability_block import OVERLAP_CONSTRAINT_NAME, VehicleAvailabilityBlock
from tourfleet.app.models.availability_enums import BlockType
from tourfleet.app.models.driver_assignment import DriverAssignment
from tourfleet.app.services.time_ranges import Interval

logger = logging.getLogger("tourfleet")


class AvailabilityLedger:
    """Ledger operations over one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_conflicts(
        self,
        vehicle_id: int,
        day: date,
        interval: Interval,
        now: Optional[datetime] = None
    ) -> List[VehicleAvailabilityBlock]:
        """
        Blocks on the vehicle/date overlapping the interval.

        Holds already past their expiry are ignored when `now` is given.
        Not authoritative: a concurrent writer may insert right after.
        """
        query = select(VehicleAvailabilityBlock).where(
            VehicleAvailabilityBlock.vehicle_id == vehicle_id,
            VehicleAvailabilityBlock.block_date == day,
            VehicleAvailabilityBlock.start_time < interval.end,
            VehicleAvailabilityBlock.end_time > interval.start,
        ).order_by(VehicleAvailabilityBlock.start_time)

        result = await self.db.execute(query)
        blocks = result.scalars().all()

        if now is not None:
            blocks = [b for b in blocks if not _is_expired_hold(b, now)]
        return blocks

    async def insert_block(self, block: VehicleAvailabilityBlock) -> VehicleAvailabilityBlock:
        """
        Insert a block, letting the storage constraint arbitrate overlap.

        On conflict the session transaction is rolled back and every object
        loaded through it is expired.

        Raises:
            ConflictError: If the block overlaps an existing one
        """
        details = {
            "vehicle_id": block.vehicle_id,
            "block_date": block.block_date.isoformat(),
            "start_time": block.start_time.isoformat(),
            "end_time": block.end_time.isoformat(),
        }
        self.db.add(block)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            if OVERLAP_CONSTRAINT_NAME not in str(exc.orig):
                raise AllocationValidationError(
                    "Availability block violates a storage constraint",
                    details=details,
                ) from exc
            logger.warning("Availability block rejected by overlap constraint", extra=details)
            raise ConflictError(
                "Time slot is no longer available on this vehicle",
                details=details,
            ) from exc
        return block

    async def remove_block(self, block_id: int) -> None:
        """
        Delete a block together with its driver assignment.

        Raises:
            NotFoundError: If the block does not exist
        """
        await self.db.execute(
            delete(DriverAssignment).where(DriverAssignment.block_id == block_id)
        )
        result = await self.db.execute(
            delete(VehicleAvailabilityBlock).where(VehicleAvailabilityBlock.id == block_id)
        )
        if result.rowcount == 0:
            raise NotFoundError("Availability block", block_id)

    async def remove_blocks(self, block_ids: List[int]) -> List[int]:
        """
        Delete whichever of the blocks still exist, with their driver assignments.

        A block already removed by a concurrent cancel, sweep or purge is
        skipped. Returns the ids actually deleted.
        """
        if not block_ids:
            return []

        await self.db.execute(
            delete(DriverAssignment).where(DriverAssignment.block_id.in_(block_ids))
        )
        result = await self.db.execute(
            delete(VehicleAvailabilityBlock)
            .where(VehicleAvailabilityBlock.id.in_(block_ids))
            .returning(VehicleAvailabilityBlock.id)
        )
        return list(result.scalars().all())

    async def promote_hold(self, block_id: int, booking_id: int, now: datetime) -> VehicleAvailabilityBlock:
        """
        Turn a HOLD into a BOOKING linked to booking_id.

        Raises:
            NotFoundError: If the hold was removed or already promoted
            ExpiredError: If the hold expired before now
        """
        block = await self.get_block(block_id)
        if block is None or block.block_type != BlockType.HOLD:
            raise NotFoundError("Hold", block_id)

        if _is_expired_hold(block, now):
            raise ExpiredError(block.hold_token, details={"block_id": block_id})

        block.block_type = BlockType.BOOKING
        block.booking_id = booking_id
        block.hold_expires_at = None
        await self.db.flush()
        return block

    async def get_block(self, block_id: int) -> Optional[VehicleAvailabilityBlock]:
        result = await self.db.execute(
            select(VehicleAvailabilityBlock).where(VehicleAvailabilityBlock.id == block_id)
        )
        return result.scalar_one_or_none()

    async def get_by_hold_token(self, hold_token: str) -> List[VehicleAvailabilityBlock]:
        result = await self.db.execute(
            select(VehicleAvailabilityBlock)
            .where(VehicleAvailabilityBlock.hold_token == hold_token)
            .order_by(VehicleAvailabilityBlock.block_date, VehicleAvailabilityBlock.start_time)
        )
        return result.scalars().all()

    async def blocks_for_booking(self, booking_id: int) -> List[VehicleAvailabilityBlock]:
        result = await self.db.execute(
            select(VehicleAvailabilityBlock)
            .where(
                VehicleAvailabilityBlock.booking_id == booking_id,
                VehicleAvailabilityBlock.block_type == BlockType.BOOKING,
            )
            .order_by(VehicleAvailabilityBlock.block_date, VehicleAvailabilityBlock.start_time)
        )
        return result.scalars().all()

    async def buffers_for_booking(self, booking_id: int) -> List[VehicleAvailabilityBlock]:
        result = await self.db.execute(
            select(VehicleAvailabilityBlock).where(
                VehicleAvailabilityBlock.booking_id == booking_id,
                VehicleAvailabilityBlock.block_type == BlockType.BUFFER,
            )
        )
        return result.scalars().all()

    async def vehicle_schedule(self, vehicle_id: int, day: date) -> List[VehicleAvailabilityBlock]:
        """All blocks on one vehicle for one date, ordered by start time."""
        result = await self.db.execute(
            select(VehicleAvailabilityBlock)
            .where(
                VehicleAvailabilityBlock.vehicle_id == vehicle_id,
                VehicleAvailabilityBlock.block_date == day,
            )
            .order_by(VehicleAvailabilityBlock.start_time)
        )
        return result.scalars().all()

    async def day_schedule(self, day: date) -> List[VehicleAvailabilityBlock]:
        return await self.blocks_in_range(day, day)

    async def blocks_in_range(
        self,
        start_day: date,
        end_day: date,
        vehicle_id: Optional[int] = None
    ) -> List[VehicleAvailabilityBlock]:
        """Blocks between two dates inclusive, for calendar views."""
        query = select(VehicleAvailabilityBlock).where(
            VehicleAvailabilityBlock.block_date >= start_day,
            VehicleAvailabilityBlock.block_date <= end_day,
        )
        if vehicle_id is not None:
            query = query.where(VehicleAvailabilityBlock.vehicle_id == vehicle_id)

        query = query.order_by(
            VehicleAvailabilityBlock.block_date,
            VehicleAvailabilityBlock.vehicle_id,
            VehicleAvailabilityBlock.start_time,
        )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def expired_holds(self, now: datetime) -> List[VehicleAvailabilityBlock]:
        result = await self.db.execute(
            select(VehicleAvailabilityBlock).where(
                VehicleAvailabilityBlock.block_type == BlockType.HOLD,
                VehicleAvailabilityBlock.hold_expires_at <= now,
            )
        )
        return result.scalars().all()

    async def purge_expired_holds(self, vehicle_id: int, day: date, now: datetime) -> int:
        """Delete expired holds on one vehicle/date. Returns the number removed."""
        result = await self.db.execute(
            delete(VehicleAvailabilityBlock).where(
                and_(
                    VehicleAvailabilityBlock.vehicle_id == vehicle_id,
                    VehicleAvailabilityBlock.block_date == day,
                    VehicleAvailabilityBlock.block_type == BlockType.HOLD,
                    VehicleAvailabilityBlock.hold_expires_at <= now,
                )
            )
        )
        return result.rowcount


def _is_expired_hold(block: VehicleAvailabilityBlock, now: datetime) -> bool:
    return (
        block.block_type == BlockType.HOLD
        and block.hold_expires_at is not None
        and block.hold_expires_at <= now
    )
