"""
Fleet Administration API Endpoints.

Vehicle registry and fleet-wide blackout dates.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.dependencies import get_actor_id, get_availability_cache
from tourfleet.app.db.session import get_db
from tourfleet.app.models.availability_enums import SharingMode
from tourfleet.app.schemas.fleet_vehicle import (
    BlackoutDateCreate, BlackoutDateResponse,
    FleetVehicleCreate, FleetVehicleListResponse, FleetVehicleResponse, FleetVehicleUpdate,
)
from tourfleet.app.services import fleet_service
from tourfleet.app.services.availability_cache import AvailabilityCache

router = APIRouter(tags=["Fleet Admin"])


@router.post("/vehicles", response_model=FleetVehicleResponse, status_code=status.HTTP_201_CREATED)
async def register_vehicle(
    vehicle_data: FleetVehicleCreate,
    actor_id: Optional[int] = Depends(get_actor_id),
    cache: AvailabilityCache = Depends(get_availability_cache),
    db: AsyncSession = Depends(get_db)
):
    """Register a vehicle, dedicated to one brand or in the shared pool."""
    vehicle = await fleet_service.register_vehicle(
        db,
        vehicle_number=vehicle_data.vehicle_number,
        name=vehicle_data.name,
        capacity=vehicle_data.capacity,
        scope=fleet_service.build_scope(vehicle_data.sharing_mode, vehicle_data.home_brand_id),
        vehicle_type=vehicle_data.vehicle_type,
        actor_id=actor_id,
        cache=cache,
    )
    return FleetVehicleResponse.model_validate(vehicle)


@router.get("/vehicles", response_model=FleetVehicleListResponse)
async def list_vehicles(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    brand_id: Optional[int] = Query(None, gt=0, description="Only vehicles this brand may use"),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db)
):
    vehicles, total = await fleet_service.list_vehicles(
        db, page=page, page_size=page_size, brand_id=brand_id, active_only=not include_inactive,
    )
    return FleetVehicleListResponse(
        vehicles=[FleetVehicleResponse.model_validate(v) for v in vehicles],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.patch("/vehicles/{vehicle_id}", response_model=FleetVehicleResponse)
async def update_vehicle(
    vehicle_data: FleetVehicleUpdate,
    vehicle_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    cache: AvailabilityCache = Depends(get_availability_cache),
    db: AsyncSession = Depends(get_db)
):
    """
    Update vehicle details.

    A home_brand_id without sharing_mode makes the vehicle dedicated to that brand.
    """
    scope = None
    if vehicle_data.sharing_mode is not None:
        scope = fleet_service.build_scope(vehicle_data.sharing_mode, vehicle_data.home_brand_id)
    elif vehicle_data.home_brand_id is not None:
        scope = fleet_service.build_scope(SharingMode.DEDICATED, vehicle_data.home_brand_id)

    vehicle = await fleet_service.update_vehicle(
        db,
        vehicle_id,
        name=vehicle_data.name,
        vehicle_type=vehicle_data.vehicle_type,
        capacity=vehicle_data.capacity,
        scope=scope,
        actor_id=actor_id,
        cache=cache,
    )
    return FleetVehicleResponse.model_validate(vehicle)


@router.post("/vehicles/{vehicle_id}/deactivate", response_model=FleetVehicleResponse)
async def deactivate_vehicle(
    vehicle_id: int = Path(..., gt=0),
    actor_id: Optional[int] = Depends(get_actor_id),
    cache: AvailabilityCache = Depends(get_availability_cache),
    db: AsyncSession = Depends(get_db)
):
    """Retire a vehicle. Existing bookings stay on it until reassigned."""
    vehicle = await fleet_service.deactivate_vehicle(db, vehicle_id, actor_id=actor_id, cache=cache)
    return FleetVehicleResponse.model_validate(vehicle)


@router.post("/blackout-dates", response_model=BlackoutDateResponse, status_code=status.HTTP_201_CREATED)
async def add_blackout_date(
    request: BlackoutDateCreate,
    actor_id: Optional[int] = Depends(get_actor_id),
    cache: AvailabilityCache = Depends(get_availability_cache),
    db: AsyncSession = Depends(get_db)
):
    """Close the fleet for a date. Existing bookings are not touched."""
    entry = await fleet_service.add_blackout_date(
        db, request.blackout_date, request.reason, actor_id=actor_id, cache=cache,
    )
    return BlackoutDateResponse.model_validate(entry)
