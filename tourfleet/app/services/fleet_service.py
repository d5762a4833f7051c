"""
Fleet administration service.

Registers and maintains the vehicles the allocator draws from, and the
fleet-wide blackout dates.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.exceptions import AllocationValidationError, NotFoundError
from tourfleet.app.models.availability_enums import SharingMode
from tourfleet.app.models.blackout_date import BlackoutDate
from tourfleet.app.models.fleet_vehicle import BrandScope, Dedicated, FleetVehicle, SharedPool
from tourfleet.app.services.audit import AuditAction, log_event
from tourfleet.app.services.availability_cache import AvailabilityCache

logger = logging.getLogger("tourfleet")


def build_scope(sharing_mode: SharingMode, home_brand_id: Optional[int]) -> BrandScope:
    """Validate a (mode, brand) pair from the API into a brand scope."""
    if sharing_mode == SharingMode.DEDICATED:
        if home_brand_id is None:
            raise AllocationValidationError("Dedicated vehicles need a home brand")
        return Dedicated(home_brand_id)
    if home_brand_id is not None:
        raise AllocationValidationError("Shared vehicles cannot have a home brand")
    return SharedPool()


async def register_vehicle(
    db: AsyncSession,
    vehicle_number: str,
    name: str,
    capacity: int,
    scope: BrandScope,
    vehicle_type: Optional[str] = None,
    actor_id: Optional[int] = None,
    cache: Optional[AvailabilityCache] = None
) -> FleetVehicle:
    """
    Add a vehicle to the fleet.

    Raises:
        AllocationValidationError: If the vehicle number is already registered
    """
    existing = await db.execute(select(FleetVehicle.id).where(FleetVehicle.vehicle_number == vehicle_number))
    if existing.first() is not None:
        raise AllocationValidationError(
            "Vehicle number already registered", details={"vehicle_number": vehicle_number}
        )

    vehicle = FleetVehicle(
        vehicle_number=vehicle_number,
        name=name,
        vehicle_type=vehicle_type,
        capacity=capacity,
        is_active=True,
    )
    vehicle.set_scope(scope)
    db.add(vehicle)
    await db.flush()

    log_event(
        db,
        AuditAction.VEHICLE_CREATED,
        actor_id=actor_id,
        vehicle_id=vehicle.id,
        metadata={"vehicle_number": vehicle_number, "capacity": capacity,
                  "sharing_mode": vehicle.sharing_mode.value, "home_brand_id": vehicle.home_brand_id},
    )
    await db.commit()
    await db.refresh(vehicle)
    await _flush_previews(cache)

    logger.info("Vehicle registered", extra={"vehicle_id": vehicle.id, "vehicle_number": vehicle_number})
    return vehicle


async def get_vehicle(db: AsyncSession, vehicle_id: int) -> FleetVehicle:
    vehicle = await db.get(FleetVehicle, vehicle_id)
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


async def list_vehicles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 50,
    brand_id: Optional[int] = None,
    active_only: bool = True
) -> Tuple[List[FleetVehicle], int]:
    """Vehicles ordered by id. With brand_id, only those the brand may use."""
    query = select(FleetVehicle)
    if active_only:
        query = query.where(FleetVehicle.is_active == True)
    if brand_id is not None:
        query = query.where(
            (FleetVehicle.sharing_mode == SharingMode.SHARED) | (FleetVehicle.home_brand_id == brand_id)
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    query = query.order_by(FleetVehicle.id).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    return result.scalars().all(), total


async def update_vehicle(
    db: AsyncSession,
    vehicle_id: int,
    name: Optional[str] = None,
    vehicle_type: Optional[str] = None,
    capacity: Optional[int] = None,
    scope: Optional[BrandScope] = None,
    actor_id: Optional[int] = None,
    cache: Optional[AvailabilityCache] = None
) -> FleetVehicle:
    """
    Change a vehicle's details. Existing blocks are left in place; a smaller
    capacity or narrower scope only affects future holds.
    """
    vehicle = await get_vehicle(db, vehicle_id)

    changes = {}
    if name is not None:
        vehicle.name = name
        changes["name"] = name
    if vehicle_type is not None:
        vehicle.vehicle_type = vehicle_type
        changes["vehicle_type"] = vehicle_type
    if capacity is not None:
        vehicle.capacity = capacity
        changes["capacity"] = capacity
    if scope is not None:
        vehicle.set_scope(scope)
        changes["sharing_mode"] = vehicle.sharing_mode.value
        changes["home_brand_id"] = vehicle.home_brand_id

    if changes:
        log_event(db, AuditAction.VEHICLE_UPDATED, actor_id=actor_id, vehicle_id=vehicle_id, metadata=changes)
        await db.commit()
        await db.refresh(vehicle)
        await _flush_previews(cache)
    return vehicle


async def deactivate_vehicle(
    db: AsyncSession,
    vehicle_id: int,
    actor_id: Optional[int] = None,
    cache: Optional[AvailabilityCache] = None
) -> FleetVehicle:
    """Retire a vehicle from future allocation. Idempotent."""
    vehicle = await get_vehicle(db, vehicle_id)
    if not vehicle.is_active:
        return vehicle

    vehicle.is_active = False
    log_event(db, AuditAction.VEHICLE_DEACTIVATED, actor_id=actor_id, vehicle_id=vehicle_id)
    await db.commit()
    await db.refresh(vehicle)
    await _flush_previews(cache)

    logger.info("Vehicle deactivated", extra={"vehicle_id": vehicle_id})
    return vehicle


async def add_blackout_date(
    db: AsyncSession,
    blackout_date: date,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
    cache: Optional[AvailabilityCache] = None
) -> BlackoutDate:
    """Close the whole fleet for a date. Re-activates an existing entry."""
    result = await db.execute(select(BlackoutDate).where(BlackoutDate.blackout_date == blackout_date))
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = BlackoutDate(blackout_date=blackout_date, reason=reason, is_active=True)
        db.add(entry)
    else:
        entry.is_active = True
        if reason is not None:
            entry.reason = reason

    log_event(
        db,
        AuditAction.BLACKOUT_DATE_CREATED,
        actor_id=actor_id,
        metadata={"date": blackout_date.isoformat(), "reason": reason},
    )
    await db.commit()
    await db.refresh(entry)
    if cache is not None:
        await cache.invalidate([blackout_date])
    return entry


async def _flush_previews(cache: Optional[AvailabilityCache]) -> None:
    # Capacity, scope and active flags feed every cached preview
    if cache is not None:
        await cache.invalidate_all()
