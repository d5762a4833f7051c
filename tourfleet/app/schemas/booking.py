"""
Booking administration schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from tourfleet.app.schemas.availability import AvailabilityBlockResponse, GeoPoint


class ReleaseResponse(BaseModel):
    released: bool


class ReassignVehicleRequest(BaseModel):
    new_vehicle_id: int = Field(..., gt=0)


class ReassignVehicleResponse(BaseModel):
    booking_id: int
    vehicle_id: int
    blocks: List[AvailabilityBlockResponse]


class AssignDriverRequest(BaseModel):
    driver_id: int = Field(..., gt=0)
    origin: Optional[GeoPoint] = None
    trip_points: Optional[List[GeoPoint]] = None


class DriverAssignmentResponse(BaseModel):
    block_id: int
    driver_id: int
    vehicle_id: int
    assigned_at: datetime

    class Config:
        from_attributes = True


class AssignDriverResponse(BaseModel):
    booking_id: int
    driver_id: int
    assignments: List[DriverAssignmentResponse]
