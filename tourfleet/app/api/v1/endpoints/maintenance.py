"""
Maintenance and schedule API Endpoints.

Fleet admin blackout windows, and read-only calendar views of the ledger.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.dependencies import get_actor_id, get_allocation_service
from tourfleet.app.db.session import get_db
from tourfleet.app.schemas.availability import AvailabilityBlockResponse
from tourfleet.app.schemas.maintenance import (
    MaintenanceBlockCreate, MaintenanceBlockResponse, ScheduleResponse, VehicleScheduleResponse,
)
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.availability_ledger import AvailabilityLedger
from tourfleet.app.services.fleet_service import get_vehicle

router = APIRouter(tags=["Maintenance & Schedule"])

MAX_SCHEDULE_DAYS = 62


@router.post("/maintenance-blocks", response_model=MaintenanceBlockResponse, status_code=status.HTTP_201_CREATED)
async def create_maintenance_block(
    request: MaintenanceBlockCreate,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Block a vehicle for maintenance.

    409 if the window overlaps an existing hold or booking.
    """
    blocks = await service.create_maintenance_block(
        request.vehicle_id,
        request.block_date,
        request.start_time,
        request.end_time,
        notes=request.notes,
        actor_id=actor_id,
    )
    return MaintenanceBlockResponse(
        vehicle_id=request.vehicle_id,
        blocks=[AvailabilityBlockResponse.model_validate(b) for b in blocks],
    )


@router.delete("/maintenance-blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_maintenance_block(
    block_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    await service.remove_maintenance_block(block_id, actor_id=actor_id)


@router.get("/vehicles/{vehicle_id}/schedule", response_model=VehicleScheduleResponse)
async def get_vehicle_schedule(
    vehicle_id: int = Path(..., gt=0),
    schedule_date: date = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Every block on one vehicle for one date, in start order."""
    await get_vehicle(db, vehicle_id)
    blocks = await AvailabilityLedger(db).vehicle_schedule(vehicle_id, schedule_date)

    return VehicleScheduleResponse(
        vehicle_id=vehicle_id,
        schedule_date=schedule_date,
        blocks=[AvailabilityBlockResponse.model_validate(b) for b in blocks],
    )


@router.get("/schedule", response_model=ScheduleResponse)
async def get_schedule(
    start_date: date = Query(...),
    end_date: date = Query(...),
    vehicle_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db)
):
    """Fleet calendar between two dates inclusive."""
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    if (end_date - start_date).days > MAX_SCHEDULE_DAYS:
        raise HTTPException(status_code=400, detail=f"Schedule range is limited to {MAX_SCHEDULE_DAYS} days")

    blocks = await AvailabilityLedger(db).blocks_in_range(start_date, end_date, vehicle_id=vehicle_id)

    return ScheduleResponse(
        start_date=start_date,
        end_date=end_date,
        blocks=[AvailabilityBlockResponse.model_validate(b) for b in blocks],
    )
