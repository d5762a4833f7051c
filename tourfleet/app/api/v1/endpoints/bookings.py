"""
Booking administration API Endpoints.

Release, vehicle reassignment and driver assignment for confirmed bookings.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path

from tourfleet.app.core.dependencies import get_actor_id, get_allocation_service
from tourfleet.app.schemas.availability import AvailabilityBlockResponse
from tourfleet.app.schemas.booking import (
    AssignDriverRequest, AssignDriverResponse, DriverAssignmentResponse,
    ReassignVehicleRequest, ReassignVehicleResponse, ReleaseResponse,
)
from tourfleet.app.services.allocation_service import AllocationService

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.delete("/{booking_id}/allocation", response_model=ReleaseResponse)
async def release_booking(
    booking_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """Free the vehicle time held by a cancelled booking. Idempotent."""
    released = await service.cancel(booking_id=booking_id, actor_id=actor_id)
    return ReleaseResponse(released=released)


@router.post("/{booking_id}/reassign-vehicle", response_model=ReassignVehicleResponse)
async def reassign_vehicle(
    request: ReassignVehicleRequest,
    booking_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Move a booking to another vehicle.

    All or nothing: on 409 the booking stays where it was.
    """
    blocks = await service.reassign_vehicle(booking_id, request.new_vehicle_id, actor_id=actor_id)

    return ReassignVehicleResponse(
        booking_id=booking_id,
        vehicle_id=request.new_vehicle_id,
        blocks=[AvailabilityBlockResponse.model_validate(b) for b in blocks],
    )


@router.post("/{booking_id}/assign-driver", response_model=AssignDriverResponse)
async def assign_driver(
    request: AssignDriverRequest,
    booking_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """Assign or replace the driver, subject to HOS and air-mile rules."""
    assignments = await service.assign_driver(
        booking_id,
        request.driver_id,
        trip_points=[(p.lat, p.lng) for p in request.trip_points] if request.trip_points else None,
        origin=(request.origin.lat, request.origin.lng) if request.origin else None,
        actor_id=actor_id,
    )

    return AssignDriverResponse(
        booking_id=booking_id,
        driver_id=request.driver_id,
        assignments=[DriverAssignmentResponse.model_validate(a) for a in assignments],
    )
