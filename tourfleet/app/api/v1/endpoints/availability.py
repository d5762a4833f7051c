"""
Availability API Endpoints.

Advisory previews for storefronts. Nothing here writes to the ledger.
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from tourfleet.app.core.dependencies import get_allocation_service
from tourfleet.app.models.fleet_vehicle import Dedicated
from tourfleet.app.schemas.availability import (
    AvailabilityCheckResponse, AvailableVehicle, SlotListResponse, SlotResponse, TourRequest,
)
from tourfleet.app.services.allocation_service import AllocationService

router = APIRouter(prefix="/availability", tags=["Availability"])


@router.post("/check", response_model=AvailabilityCheckResponse)
async def check_availability(
    request: TourRequest,
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Preview the vehicles free for a tour, best match first.

    The answer may be stale by the time a hold is requested.
    """
    preview = await service.check_availability(request.to_draft(), request.candidate_vehicle_ids)

    return AvailabilityCheckResponse(
        available=preview.available,
        vehicles=[
            AvailableVehicle(
                vehicle_id=c.vehicle_id,
                name=c.name,
                capacity=c.capacity,
                home_brand_id=c.scope.brand_id if isinstance(c.scope, Dedicated) else None,
            )
            for c in preview.vehicles
        ],
        reasons=preview.reasons,
    )


@router.get("/slots", response_model=SlotListResponse)
async def list_available_slots(
    brand_id: int = Query(..., gt=0),
    tour_date: date = Query(...),
    duration_hours: float = Query(..., gt=0, le=14),
    party_size: int = Query(..., ge=1),
    vehicle_ids: Optional[List[int]] = Query(None),
    service: AllocationService = Depends(get_allocation_service)
):
    """Hourly start times for a tour of the given length."""
    slots = await service.available_slots(brand_id, tour_date, duration_hours, party_size, vehicle_ids)

    return SlotListResponse(
        brand_id=brand_id,
        tour_date=tour_date,
        duration_hours=duration_hours,
        slots=[
            SlotResponse(
                start_time=s.start_time,
                end_time=s.end_time,
                available=s.available,
                vehicle_ids=s.vehicle_ids,
            )
            for s in slots
        ],
    )
