"""
Allocation service.

Orchestrates hold -> commit -> release over the availability ledger.

Attempt lifecycle:
REQUESTED -> HELD -> COMMITTED | RELEASED
REQUESTED -> REJECTED

Every hold attempt is its own short transaction. A conflict from the
storage constraint moves on to the next ranked vehicle, up to
max_hold_attempts. The compliance overlay is consulted before any write
in commit and assign_driver.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.config import settings
from tourfleet.app.core.exceptions import (
    AllocationValidationError, ComplianceViolation, ConflictError, ExpiredError, NotFoundError,
)
from tourfleet.app.models.availability_block import VehicleAvailabilityBlock
from tourfleet.app.models.availability_enums import AllocationState, BlockType
from tourfleet.app.models.blackout_date import BlackoutDate
from tourfleet.app.models.driver_assignment import DriverAssignment
from tourfleet.app.models.fleet_vehicle import FleetVehicle
from tourfleet.app.services.allocation_types import (
    AllocationOutcome, AvailableSet, BookingDraft, HoldToken, VehicleCandidate,
)
from tourfleet.app.services.arbitration import ArbitrationPolicy
from tourfleet.app.services.audit import AuditAction, log_event
from tourfleet.app.services.availability_cache import AvailabilityCache
from tourfleet.app.services.availability_ledger import AvailabilityLedger
from tourfleet.app.services.compliance import ComplianceOverlay
from tourfleet.app.services.time_ranges import (
    Interval, Point, add_hours, overlaps, parse_time, shift_minutes, split_overnight, utcnow,
    within_operating_hours,
)

logger = logging.getLogger("tourfleet")


# Reasons reported by an empty availability preview
REASON_BLACKOUT = "blackout_date"
REASON_OUTSIDE_HOURS = "outside_operating_hours"
REASON_PAST = "in_the_past"
REASON_NO_CAPACITY = "no_eligible_vehicle_with_capacity"
REASON_FULLY_BOOKED = "fully_booked"


@dataclass(frozen=True)
class _BlockSnapshot:
    """Detached copy of a block, readable after a rollback."""
    id: int
    vehicle_id: int
    block_date: date
    start_time: time
    end_time: time
    continues_next_day: bool
    block_type: BlockType
    booking_id: Optional[int]
    brand_id: Optional[int]
    party_size: Optional[int]
    hold_token: Optional[str]
    hold_expires_at: Optional[datetime]

    @classmethod
    def of(cls, block: VehicleAvailabilityBlock) -> "_BlockSnapshot":
        return cls(
            id=block.id,
            vehicle_id=block.vehicle_id,
            block_date=block.block_date,
            start_time=block.start_time,
            end_time=block.end_time,
            continues_next_day=block.continues_next_day,
            block_type=block.block_type,
            booking_id=block.booking_id,
            brand_id=block.brand_id,
            party_size=block.party_size,
            hold_token=block.hold_token,
            hold_expires_at=block.hold_expires_at,
        )

    @property
    def interval(self) -> Interval:
        return Interval(self.start_time, self.end_time)


@dataclass(frozen=True)
class SlotAvailability:
    start_time: time
    end_time: time
    vehicle_ids: List[int]

    @property
    def available(self) -> bool:
        return bool(self.vehicle_ids)


class AllocationService:
    """Hold, commit and release vehicles for tour bookings."""

    def __init__(
        self,
        db: AsyncSession,
        policy: ArbitrationPolicy,
        compliance: Optional[ComplianceOverlay] = None,
        cache: Optional[AvailabilityCache] = None,
        hold_ttl_minutes: int = settings.hold_ttl_minutes,
        max_hold_attempts: int = settings.max_hold_attempts,
        buffer_minutes: int = settings.booking_buffer_minutes,
        operating_day_start: time = parse_time(settings.operating_day_start),
        operating_day_end: time = parse_time(settings.operating_day_end),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.ledger = AvailabilityLedger(db)
        self.policy = policy
        self.compliance = compliance
        self.cache = cache
        self.hold_ttl = timedelta(minutes=hold_ttl_minutes)
        self.max_hold_attempts = max_hold_attempts
        self.buffer_minutes = buffer_minutes
        self.operating_day_start = operating_day_start
        self.operating_day_end = operating_day_end
        self.clock = clock

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    async def check_availability(
        self,
        draft: BookingDraft,
        candidate_vehicle_ids: Optional[Sequence[int]] = None
    ) -> AvailableSet:
        """
        Advisory preview of vehicles free for the draft, best first.

        Never authoritative: request_hold may still conflict.
        """
        if self.cache is not None:
            cached = await self.cache.get(draft, candidate_vehicle_ids)
            if cached is not None:
                return cached

        preview = await self._preview(draft, self.clock(), candidate_vehicle_ids)

        if self.cache is not None:
            await self.cache.set(draft, candidate_vehicle_ids, preview)
        return preview

    async def available_slots(
        self,
        brand_id: int,
        day: date,
        duration_hours: float,
        party_size: int,
        candidate_vehicle_ids: Optional[Sequence[int]] = None
    ) -> List[SlotAvailability]:
        """Hourly start times within operating hours, with the vehicles free for each."""
        if duration_hours <= 0:
            raise AllocationValidationError("Duration must be positive", details={"duration_hours": duration_hours})
        if await self._is_blackout(day):
            return []

        now = self.clock()
        ranked = self.policy.rank(brand_id, await self._load_candidates(candidate_vehicle_ids), party_size)

        busy: Dict[int, List[Interval]] = {}
        for block in await self.ledger.day_schedule(day):
            if block.block_type == BlockType.HOLD and block.hold_expires_at <= now:
                continue
            busy.setdefault(block.vehicle_id, []).append(Interval(block.start_time, block.end_time))

        slots = []
        start = self.operating_day_start
        while start is not None:
            end = add_hours(start, duration_hours)
            if end is None or not within_operating_hours(Interval(start, end), self.operating_day_start,
                                                         self.operating_day_end):
                break
            if datetime.combine(day, start) > now:
                interval = Interval(start, end)
                free = [
                    c.vehicle_id for c in ranked
                    if not any(overlaps(interval, taken) for taken in busy.get(c.vehicle_id, []))
                ]
                slots.append(SlotAvailability(start_time=start, end_time=end, vehicle_ids=free))
            start = add_hours(start, 1)
        return slots

    # ------------------------------------------------------------------
    # Hold workflow
    # ------------------------------------------------------------------

    async def request_hold(
        self,
        draft: BookingDraft,
        candidate_vehicle_ids: Optional[Sequence[int]] = None
    ) -> HoldToken:
        """
        Place a HOLD on the best free vehicle.

        Each candidate is tried in its own transaction; a storage conflict
        falls through to the next one.

        Raises:
            AllocationValidationError: If the draft cannot be booked at all
            ConflictError: If every attempted vehicle conflicted
        """
        now = self.clock()
        reasons = await self._draft_reasons(draft, now)
        if reasons:
            raise AllocationValidationError("Tour cannot be booked at the requested time",
                                            details={"reasons": reasons})

        preview = await self._preview(draft, now, candidate_vehicle_ids)
        if not preview.available:
            raise ConflictError("No vehicle is available for the requested time",
                                details={"reasons": preview.reasons})

        candidates = preview.vehicles[:self.max_hold_attempts]
        tried = []
        for attempt, candidate in enumerate(candidates, start=1):
            token = uuid.uuid4().hex
            tried.append(candidate.vehicle_id)
            try:
                block_ids = await self._place_hold(candidate, draft, token, now)
            except ConflictError:
                logger.info(
                    "Hold attempt conflicted, trying next vehicle",
                    extra={"vehicle_id": candidate.vehicle_id, "attempt": attempt, "brand_id": draft.brand_id},
                )
                continue

            await self._invalidate(s.day for s in draft.segments)
            logger.info(
                "Hold placed",
                extra={"hold_token": token, "vehicle_id": candidate.vehicle_id, "attempt": attempt},
            )
            return HoldToken(
                token=token,
                vehicle_id=candidate.vehicle_id,
                block_ids=block_ids,
                expires_at=now + self.hold_ttl,
                attempts=attempt,
            )

        raise ConflictError(
            "Time slot is no longer available",
            details={"attempts": len(tried), "vehicle_ids": tried},
        )

    async def request_holds_batch(self, drafts: Sequence[BookingDraft]) -> List[AllocationOutcome]:
        """Serve competing drafts in arbitration order. Outcomes follow that order."""
        outcomes = []
        for draft in self.policy.order_requests(drafts):
            try:
                hold = await self.request_hold(draft)
            except (ConflictError, AllocationValidationError) as exc:
                outcomes.append(AllocationOutcome(draft=draft, state=AllocationState.REJECTED, error=exc.message))
            else:
                outcomes.append(AllocationOutcome(draft=draft, state=AllocationState.HELD, hold=hold))
        return outcomes

    async def commit(
        self,
        hold_token: str,
        booking_id: int,
        driver_id: Optional[int] = None,
        trip_points: Optional[List[Point]] = None,
        origin: Optional[Point] = None,
        actor_id: Optional[int] = None
    ) -> List[VehicleAvailabilityBlock]:
        """
        Promote a hold to a confirmed booking.

        Raises:
            NotFoundError: If the hold is gone or already committed
            ExpiredError: If the hold TTL has passed (the hold is released)
            ComplianceViolation: If the driver cannot take the tour (hold kept)
        """
        now = self.clock()
        holds = [
            _BlockSnapshot.of(b) for b in await self.ledger.get_by_hold_token(hold_token)
            if b.block_type == BlockType.HOLD
        ]
        if not holds:
            raise NotFoundError("Hold", hold_token)

        if any(h.hold_expires_at <= now for h in holds):
            await self._release(holds, AuditAction.HOLD_EXPIRED, actor_id)
            logger.info("Commit on expired hold, hold released", extra={"hold_token": hold_token})
            raise ExpiredError(hold_token)

        if driver_id is not None:
            await self._ensure_driver_compliant(
                driver_id, holds, now, actor_id, booking_id=booking_id,
                trip_points=trip_points, origin=origin,
            )

        blocks = []
        for hold in holds:
            blocks.append(await self.ledger.promote_hold(hold.id, booking_id, now))
            if driver_id is not None:
                self.db.add(DriverAssignment(
                    block_id=hold.id, driver_id=driver_id, vehicle_id=hold.vehicle_id, assigned_at=now,
                ))

        log_event(
            self.db,
            AuditAction.HOLD_COMMITTED,
            actor_id=actor_id,
            vehicle_id=holds[0].vehicle_id,
            block_id=holds[0].id,
            booking_id=booking_id,
            metadata={"hold_token": hold_token, "driver_id": driver_id, "block_ids": [h.id for h in holds]},
        )
        await self.db.commit()
        await self._invalidate(h.block_date for h in holds)

        if await self._place_buffers(booking_id, holds, now, actor_id):
            blocks = await self.ledger.blocks_for_booking(booking_id)

        logger.info("Hold committed", extra={"hold_token": hold_token, "booking_id": booking_id})
        return blocks

    async def cancel(
        self,
        hold_token: Optional[str] = None,
        booking_id: Optional[int] = None,
        actor_id: Optional[int] = None
    ) -> bool:
        """
        Release a hold or a confirmed booking. Idempotent.

        Returns:
            True if blocks were released, False if there was nothing to release
        """
        if (hold_token is None) == (booking_id is None):
            raise AllocationValidationError("Provide exactly one of hold_token or booking_id")

        if hold_token is not None:
            blocks = await self.ledger.get_by_hold_token(hold_token)
            action = AuditAction.HOLD_RELEASED
        else:
            blocks = await self.ledger.blocks_for_booking(booking_id)
            if blocks:
                blocks = list(blocks) + list(await self.ledger.buffers_for_booking(booking_id))
            action = AuditAction.BOOKING_RELEASED

        if not blocks:
            return False

        released = await self._release([_BlockSnapshot.of(b) for b in blocks], action, actor_id)
        return bool(released)

    async def sweep_expired_holds(self, now: Optional[datetime] = None) -> int:
        """Release every hold past its TTL. Returns the number of blocks removed."""
        now = now or self.clock()
        expired = [_BlockSnapshot.of(b) for b in await self.ledger.expired_holds(now)]
        if not expired:
            return 0

        released = await self._release(expired, AuditAction.HOLD_EXPIRED, actor_id=None)
        logger.info(
            "Expired holds swept",
            extra={"count": len(released), "already_gone": len(expired) - len(released)},
        )
        return len(released)

    # ------------------------------------------------------------------
    # Booking administration
    # ------------------------------------------------------------------

    async def reassign_vehicle(
        self,
        booking_id: int,
        new_vehicle_id: int,
        actor_id: Optional[int] = None
    ) -> List[VehicleAvailabilityBlock]:
        """
        Move a confirmed booking to another vehicle in one transaction.

        On conflict nothing changes and the booking stays on its vehicle.

        Raises:
            NotFoundError: If the booking or vehicle does not exist
            AllocationValidationError: If the vehicle cannot serve the booking
            ConflictError: If the vehicle is busy at that time
        """
        now = self.clock()
        current = await self.ledger.blocks_for_booking(booking_id)
        if not current:
            raise NotFoundError("Booking", booking_id)

        old = [_BlockSnapshot.of(b) for b in current]
        old_vehicle_id = old[0].vehicle_id
        if old_vehicle_id == new_vehicle_id:
            return current

        vehicle = await self.db.get(FleetVehicle, new_vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", new_vehicle_id)
        self._ensure_can_serve(VehicleCandidate.from_vehicle(vehicle), vehicle.is_active, old[0])

        drivers = await self._drivers_by_block([b.id for b in old])
        old_buffers = [b.id for b in await self.ledger.buffers_for_booking(booking_id)]

        moved = []
        for snapshot in old:
            await self.ledger.purge_expired_holds(new_vehicle_id, snapshot.block_date, now)
            block = VehicleAvailabilityBlock(
                vehicle_id=new_vehicle_id,
                block_date=snapshot.block_date,
                start_time=snapshot.start_time,
                end_time=snapshot.end_time,
                continues_next_day=snapshot.continues_next_day,
                block_type=BlockType.BOOKING,
                booking_id=booking_id,
                brand_id=snapshot.brand_id,
                party_size=snapshot.party_size,
                hold_token=snapshot.hold_token,
                created_by=actor_id,
                created_at=now,
            )
            await self.ledger.insert_block(block)
            moved.append((snapshot, block))

        for snapshot, block in moved:
            await self.ledger.remove_block(snapshot.id)
            driver_id = drivers.get(snapshot.id)
            if driver_id is not None:
                self.db.add(DriverAssignment(
                    block_id=block.id, driver_id=driver_id, vehicle_id=new_vehicle_id, assigned_at=now,
                ))
        await self.ledger.remove_blocks(old_buffers)

        log_event(
            self.db,
            AuditAction.VEHICLE_REASSIGNED,
            actor_id=actor_id,
            vehicle_id=new_vehicle_id,
            block_id=moved[0][1].id,
            booking_id=booking_id,
            metadata={"from_vehicle_id": old_vehicle_id, "to_vehicle_id": new_vehicle_id},
        )
        await self.db.commit()
        await self._invalidate(s.block_date for s in old)

        logger.info(
            "Booking moved to another vehicle",
            extra={"booking_id": booking_id, "from_vehicle_id": old_vehicle_id, "to_vehicle_id": new_vehicle_id},
        )

        placed = [_BlockSnapshot.of(block) for _, block in moved]
        if await self._place_buffers(booking_id, placed, now, actor_id):
            return await self.ledger.blocks_for_booking(booking_id)
        return [block for _, block in moved]

    async def assign_driver(
        self,
        booking_id: int,
        driver_id: int,
        trip_points: Optional[List[Point]] = None,
        origin: Optional[Point] = None,
        actor_id: Optional[int] = None
    ) -> List[DriverAssignment]:
        """
        Put a driver on a confirmed booking, replacing any previous driver.

        Raises:
            NotFoundError: If the booking does not exist
            ComplianceViolation: If the driver cannot take the tour
        """
        now = self.clock()
        blocks = [_BlockSnapshot.of(b) for b in await self.ledger.blocks_for_booking(booking_id)]
        if not blocks:
            raise NotFoundError("Booking", booking_id)

        await self._ensure_driver_compliant(
            driver_id, blocks, now, actor_id, booking_id=booking_id,
            trip_points=trip_points, origin=origin,
        )

        block_ids = [b.id for b in blocks]
        await self.db.execute(delete(DriverAssignment).where(DriverAssignment.block_id.in_(block_ids)))
        assignments = []
        for block in blocks:
            assignment = DriverAssignment(
                block_id=block.id, driver_id=driver_id, vehicle_id=block.vehicle_id, assigned_at=now,
            )
            self.db.add(assignment)
            assignments.append(assignment)

        log_event(
            self.db,
            AuditAction.DRIVER_ASSIGNED,
            actor_id=actor_id,
            vehicle_id=blocks[0].vehicle_id,
            block_id=blocks[0].id,
            booking_id=booking_id,
            metadata={"driver_id": driver_id},
        )
        await self.db.commit()
        return assignments

    async def create_maintenance_block(
        self,
        vehicle_id: int,
        day: date,
        start_time: time,
        end_time: time,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None
    ) -> List[VehicleAvailabilityBlock]:
        """
        Take a vehicle out of service for a window.

        Raises:
            NotFoundError: If the vehicle does not exist
            ConflictError: If the window overlaps a hold or booking
        """
        now = self.clock()
        if await self.db.get(FleetVehicle, vehicle_id) is None:
            raise NotFoundError("Vehicle", vehicle_id)
        if start_time == end_time:
            raise AllocationValidationError("Maintenance window must not be empty")

        segments = split_overnight(day, start_time, end_time)
        blocks = []
        for segment in segments:
            await self.ledger.purge_expired_holds(vehicle_id, segment.day, now)
            block = VehicleAvailabilityBlock(
                vehicle_id=vehicle_id,
                block_date=segment.day,
                start_time=segment.interval.start,
                end_time=segment.interval.end,
                continues_next_day=segment.continues_next_day,
                block_type=BlockType.MAINTENANCE,
                notes=notes,
                created_by=actor_id,
                created_at=now,
            )
            await self.ledger.insert_block(block)
            blocks.append(block)

        log_event(
            self.db,
            AuditAction.MAINTENANCE_BLOCK_CREATED,
            actor_id=actor_id,
            vehicle_id=vehicle_id,
            block_id=blocks[0].id,
            metadata={"date": day.isoformat(), "start": start_time.isoformat(), "end": end_time.isoformat()},
        )
        await self.db.commit()
        await self._invalidate(s.day for s in segments)
        return blocks

    async def remove_maintenance_block(self, block_id: int, actor_id: Optional[int] = None) -> None:
        """
        Raises:
            NotFoundError: If the block does not exist
            AllocationValidationError: If the block is not a maintenance block
        """
        block = await self.ledger.get_block(block_id)
        if block is None:
            raise NotFoundError("Availability block", block_id)
        if block.block_type != BlockType.MAINTENANCE:
            raise AllocationValidationError(
                "Only maintenance blocks can be removed directly; cancel holds and bookings instead",
                details={"block_id": block_id, "block_type": block.block_type.value},
            )

        snapshot = _BlockSnapshot.of(block)
        await self.ledger.remove_block(block_id)
        log_event(
            self.db,
            AuditAction.MAINTENANCE_BLOCK_REMOVED,
            actor_id=actor_id,
            vehicle_id=snapshot.vehicle_id,
            block_id=block_id,
        )
        await self.db.commit()
        await self._invalidate([snapshot.block_date])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _preview(
        self,
        draft: BookingDraft,
        now: datetime,
        candidate_vehicle_ids: Optional[Sequence[int]] = None
    ) -> AvailableSet:
        reasons = await self._draft_reasons(draft, now)
        if reasons:
            return AvailableSet(reasons=reasons)

        candidates = await self._load_candidates(candidate_vehicle_ids)
        ranked = self.policy.rank(draft.brand_id, candidates, draft.party_size)
        if not ranked:
            return AvailableSet(reasons=[REASON_NO_CAPACITY])

        free = []
        for candidate in ranked:
            if await self._is_free(candidate.vehicle_id, draft, now):
                free.append(candidate)

        if not free:
            return AvailableSet(reasons=[REASON_FULLY_BOOKED])
        return AvailableSet(vehicles=free)

    async def _is_free(self, vehicle_id: int, draft: BookingDraft, now: datetime) -> bool:
        for segment in draft.segments:
            if await self.ledger.find_conflicts(vehicle_id, segment.day, segment.interval, now=now):
                return False
        return True

    async def _draft_reasons(self, draft: BookingDraft, now: datetime) -> List[str]:
        if draft.party_size < 1:
            raise AllocationValidationError("Party size must be at least 1", details={"party_size": draft.party_size})
        if draft.start_time == draft.end_time:
            raise AllocationValidationError("Tour must have a positive duration")

        reasons = []
        if datetime.combine(draft.day, draft.start_time) <= now:
            reasons.append(REASON_PAST)
        # Operating hours bound the pickup time; overnight tours may run past closing
        if not (self.operating_day_start <= draft.start_time < self.operating_day_end):
            reasons.append(REASON_OUTSIDE_HOURS)
        elif not draft.is_overnight and draft.end_time > self.operating_day_end:
            reasons.append(REASON_OUTSIDE_HOURS)
        for segment in draft.segments:
            if await self._is_blackout(segment.day):
                reasons.append(REASON_BLACKOUT)
                break
        return reasons

    async def _is_blackout(self, day: date) -> bool:
        result = await self.db.execute(
            select(BlackoutDate.id).where(BlackoutDate.blackout_date == day, BlackoutDate.is_active == True)
        )
        return result.first() is not None

    async def _load_candidates(self, vehicle_ids: Optional[Sequence[int]] = None) -> List[VehicleCandidate]:
        query = select(FleetVehicle).where(FleetVehicle.is_active == True).order_by(FleetVehicle.id)
        if vehicle_ids:
            query = query.where(FleetVehicle.id.in_(list(vehicle_ids)))
        result = await self.db.execute(query)
        return [VehicleCandidate.from_vehicle(v) for v in result.scalars().all()]

    async def _place_hold(self, candidate: VehicleCandidate, draft: BookingDraft, token: str,
                          now: datetime) -> List[int]:
        """One hold attempt: purge stale holds, insert every segment, commit."""
        segments = draft.segments
        purged = 0
        for segment in segments:
            purged += await self.ledger.purge_expired_holds(candidate.vehicle_id, segment.day, now)

        block_ids = []
        for segment in segments:
            block = VehicleAvailabilityBlock(
                vehicle_id=candidate.vehicle_id,
                block_date=segment.day,
                start_time=segment.interval.start,
                end_time=segment.interval.end,
                continues_next_day=segment.continues_next_day,
                block_type=BlockType.HOLD,
                brand_id=draft.brand_id,
                party_size=draft.party_size,
                hold_token=token,
                created_by=draft.created_by,
                created_at=now,
                hold_expires_at=now + self.hold_ttl,
            )
            await self.ledger.insert_block(block)
            block_ids.append(block.id)

        log_event(
            self.db,
            AuditAction.HOLD_PLACED,
            actor_id=draft.created_by,
            vehicle_id=candidate.vehicle_id,
            block_id=block_ids[0],
            metadata={
                "hold_token": token,
                "brand_id": draft.brand_id,
                "date": draft.day.isoformat(),
                "start": draft.start_time.isoformat(),
                "end": draft.end_time.isoformat(),
                "purged_expired_holds": purged,
            },
        )
        await self.db.commit()
        return block_ids

    async def _place_buffers(self, booking_id: int, segments: List[_BlockSnapshot],
                             now: datetime, actor_id: Optional[int]) -> int:
        """
        Pad a committed booking with prep time on its vehicle.

        Each buffer is its own short transaction and is skipped when it would
        leave operating hours or overlap another block. The booking stands
        either way. Returns the number of buffers placed.
        """
        if self.buffer_minutes <= 0 or not segments:
            return 0

        first, last = segments[0], segments[-1]
        windows = []
        before = shift_minutes(first.start_time, -self.buffer_minutes)
        if before is not None:
            windows.append((first, Interval(before, first.start_time), "Pre-booking buffer"))
        after = shift_minutes(last.end_time, self.buffer_minutes)
        if after is not None:
            windows.append((last, Interval(last.end_time, after), "Post-booking buffer"))

        placed = []
        for anchor, window, note in windows:
            if not within_operating_hours(window, self.operating_day_start, self.operating_day_end):
                continue
            await self.ledger.purge_expired_holds(anchor.vehicle_id, anchor.block_date, now)
            if await self.ledger.find_conflicts(anchor.vehicle_id, anchor.block_date, window, now=now):
                continue

            block = VehicleAvailabilityBlock(
                vehicle_id=anchor.vehicle_id,
                block_date=anchor.block_date,
                start_time=window.start,
                end_time=window.end,
                block_type=BlockType.BUFFER,
                booking_id=booking_id,
                brand_id=anchor.brand_id,
                hold_token=anchor.hold_token,
                notes=note,
                created_by=actor_id,
                created_at=now,
            )
            try:
                await self.ledger.insert_block(block)
            except ConflictError:
                logger.info("Booking buffer skipped", extra={"booking_id": booking_id, "note": note})
                continue
            await self.db.commit()
            placed.append(anchor.block_date)

        await self.db.commit()
        if placed:
            await self._invalidate(placed)
        return len(placed)

    async def _release(self, blocks: List[_BlockSnapshot], action: str,
                       actor_id: Optional[int]) -> List[_BlockSnapshot]:
        """Remove blocks still present and audit those. Returns the ones removed."""
        removed_ids = set(await self.ledger.remove_blocks([b.id for b in blocks]))
        removed = [b for b in blocks if b.id in removed_ids]
        if not removed:
            await self.db.commit()
            return []

        for token, group in _group_by_release(removed).items():
            first = group[0]
            log_event(
                self.db,
                action,
                actor_id=actor_id,
                vehicle_id=first.vehicle_id,
                block_id=first.id,
                booking_id=first.booking_id,
                metadata={"hold_token": first.hold_token, "block_ids": [b.id for b in group]},
            )
        await self.db.commit()
        await self._invalidate(b.block_date for b in removed)
        return removed

    async def _ensure_driver_compliant(
        self,
        driver_id: int,
        blocks: List[_BlockSnapshot],
        now: datetime,
        actor_id: Optional[int],
        booking_id: Optional[int] = None,
        trip_points: Optional[List[Point]] = None,
        origin: Optional[Point] = None
    ) -> None:
        if self.compliance is None:
            raise AllocationValidationError("Driver assignment is unavailable without a compliance overlay")

        first = blocks[0]
        try:
            await self.compliance.ensure_can_assign(
                self.db,
                driver_id,
                first.block_date,
                [b.interval for b in blocks],
                now,
                exclude_block_ids=[b.id for b in blocks],
                trip_points=trip_points,
                origin=origin,
            )
        except ComplianceViolation as exc:
            log_event(
                self.db,
                AuditAction.COMPLIANCE_BLOCKED,
                actor_id=actor_id,
                vehicle_id=first.vehicle_id,
                block_id=first.id,
                booking_id=booking_id,
                metadata={"driver_id": driver_id, "violations": exc.violations},
            )
            await self.db.commit()
            raise

    def _ensure_can_serve(self, candidate: VehicleCandidate, is_active: bool, booking: _BlockSnapshot) -> None:
        details = {"vehicle_id": candidate.vehicle_id, "booking_id": booking.booking_id}
        if not is_active:
            raise AllocationValidationError("Vehicle is inactive", details=details)
        if booking.party_size is not None and candidate.capacity < booking.party_size:
            raise AllocationValidationError("Vehicle is too small for the party", details=details)
        if booking.brand_id is not None and not self.policy.is_eligible(booking.brand_id, candidate):
            raise AllocationValidationError("Vehicle is dedicated to another brand", details=details)

    async def _drivers_by_block(self, block_ids: List[int]) -> Dict[int, int]:
        result = await self.db.execute(
            select(DriverAssignment.block_id, DriverAssignment.driver_id)
            .where(DriverAssignment.block_id.in_(block_ids))
        )
        return {block_id: driver_id for block_id, driver_id in result.all()}

    async def _invalidate(self, days) -> None:
        if self.cache is not None:
            await self.cache.invalidate(list(days))


def _group_by_release(blocks: List[_BlockSnapshot]) -> Dict[str, List[_BlockSnapshot]]:
    """Segments of one hold or booking share an audit entry."""
    groups: Dict[str, List[_BlockSnapshot]] = {}
    for block in blocks:
        key = block.hold_token or f"block:{block.id}"
        groups.setdefault(key, []).append(block)
    return groups
