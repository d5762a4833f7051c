"""
Maintenance window and schedule schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, time
from typing import List, Optional

from tourfleet.app.schemas.availability import AvailabilityBlockResponse


class MaintenanceBlockCreate(BaseModel):
    """Take a vehicle out of service. An end at or before start runs past midnight."""
    vehicle_id: int = Field(..., gt=0)
    block_date: date
    start_time: time
    end_time: time
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_time == self.end_time:
            raise ValueError("start_time and end_time must differ")
        return self


class MaintenanceBlockResponse(BaseModel):
    vehicle_id: int
    blocks: List[AvailabilityBlockResponse]


class VehicleScheduleResponse(BaseModel):
    vehicle_id: int
    schedule_date: date
    blocks: List[AvailabilityBlockResponse]


class ScheduleResponse(BaseModel):
    """Calendar view across the fleet."""
    start_date: date
    end_date: date
    blocks: List[AvailabilityBlockResponse]
