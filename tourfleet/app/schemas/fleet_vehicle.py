"""
Fleet Vehicle Pydantic schemas.

Defines request and response models for vehicle management.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from tourfleet.app.models.availability_enums import SharingMode


class FleetVehicleCreate(BaseModel):
    """Schema for registering a new fleet vehicle."""
    vehicle_number: str = Field(..., min_length=1, max_length=100, description="Unique vehicle registration number")
    name: str = Field(..., min_length=1, max_length=200, description="Display name (e.g., Sprinter 14)")
    vehicle_type: Optional[str] = Field(None, max_length=100, description="Vehicle type (e.g., Sprinter, Limo, Coach)")

    capacity: int = Field(..., gt=0, description="Passenger seats")

    # Brand scope
    sharing_mode: SharingMode = SharingMode.SHARED
    home_brand_id: Optional[int] = Field(None, gt=0, description="Required for dedicated vehicles")


class FleetVehicleUpdate(BaseModel):
    """Schema for updating an existing fleet vehicle."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    vehicle_type: Optional[str] = Field(None, max_length=100)
    capacity: Optional[int] = Field(None, gt=0)
    sharing_mode: Optional[SharingMode] = None
    home_brand_id: Optional[int] = Field(None, gt=0)


class FleetVehicleResponse(BaseModel):
    """Schema for fleet vehicle response."""
    id: int
    vehicle_number: str
    name: str
    vehicle_type: Optional[str]
    capacity: int
    sharing_mode: SharingMode
    home_brand_id: Optional[int]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FleetVehicleListResponse(BaseModel):
    """Schema for paginated fleet vehicle list."""
    vehicles: List[FleetVehicleResponse]
    total: int
    page: int
    page_size: int


class BlackoutDateCreate(BaseModel):
    blackout_date: date
    reason: Optional[str] = Field(None, max_length=255)


class BlackoutDateResponse(BaseModel):
    id: int
    blackout_date: date
    reason: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True
