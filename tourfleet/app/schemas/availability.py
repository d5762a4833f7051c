"""
Availability and hold Pydantic schemas.

Request and response models for previews, holds and commits.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime, time
from typing import List, Optional

from tourfleet.app.models.availability_enums import AllocationState, BlockType
from tourfleet.app.services.allocation_types import BookingDraft


class TourRequest(BaseModel):
    """A tour a storefront wants to place on a vehicle."""
    brand_id: int = Field(..., gt=0, description="Storefront brand requesting the tour")
    tour_date: date
    start_time: time
    end_time: time = Field(..., description="At or before start_time means the tour runs past midnight")
    party_size: int = Field(..., ge=1, description="Passengers to seat")
    requested_at: Optional[datetime] = None
    candidate_vehicle_ids: Optional[List[int]] = Field(None, description="Restrict to these vehicles")

    @model_validator(mode="after")
    def check_duration(self):
        if self.start_time == self.end_time:
            raise ValueError("start_time and end_time must differ")
        return self

    def to_draft(self, created_by: Optional[int] = None) -> BookingDraft:
        return BookingDraft(
            brand_id=self.brand_id,
            day=self.tour_date,
            start_time=self.start_time,
            end_time=self.end_time,
            party_size=self.party_size,
            requested_at=self.requested_at,
            created_by=created_by,
        )


class AvailableVehicle(BaseModel):
    vehicle_id: int
    name: str
    capacity: int
    home_brand_id: Optional[int] = None  # None for shared-pool vehicles


class AvailabilityCheckResponse(BaseModel):
    """Advisory preview; a hold may still conflict."""
    available: bool
    vehicles: List[AvailableVehicle]
    reasons: List[str] = []


class SlotResponse(BaseModel):
    start_time: time
    end_time: time
    available: bool
    vehicle_ids: List[int]


class SlotListResponse(BaseModel):
    brand_id: int
    tour_date: date
    duration_hours: float
    slots: List[SlotResponse]


class HoldResponse(BaseModel):
    hold_token: str
    vehicle_id: int
    block_ids: List[int]
    expires_at: datetime
    attempts: int
    state: AllocationState


class BatchHoldRequest(BaseModel):
    requests: List[TourRequest] = Field(..., min_length=1, max_length=50)


class BatchHoldOutcome(BaseModel):
    brand_id: int
    tour_date: date
    start_time: time
    end_time: time
    state: AllocationState
    hold: Optional[HoldResponse] = None
    error: Optional[str] = None


class BatchHoldResponse(BaseModel):
    """Outcomes in the order the requests were served."""
    outcomes: List[BatchHoldOutcome]


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CommitRequest(BaseModel):
    booking_id: int = Field(..., gt=0)
    driver_id: Optional[int] = Field(None, gt=0)

    # Planned route, for the 150 air-mile check
    origin: Optional[GeoPoint] = None
    trip_points: Optional[List[GeoPoint]] = None


class AvailabilityBlockResponse(BaseModel):
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
    notes: Optional[str]
    created_at: datetime
    hold_expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class CommitResponse(BaseModel):
    booking_id: int
    driver_id: Optional[int]
    blocks: List[AvailabilityBlockResponse]
