"""
Plain value types passed between the allocation service, the arbitration
policy and the API layer.

They hold no session state, so they stay readable after a conflict rolls
the transaction back and expires every loaded ORM object.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional

from tourfleet.app.models.availability_enums import AllocationState
from tourfleet.app.models.fleet_vehicle import BrandScope, FleetVehicle
from tourfleet.app.services.time_ranges import DaySegment, Interval, split_overnight


@dataclass(frozen=True)
class BookingDraft:
    """A tour request from one storefront, before any vehicle is held."""
    brand_id: int
    day: date
    start_time: time
    end_time: time
    party_size: int
    requested_at: Optional[datetime] = None
    created_by: Optional[int] = None

    @property
    def segments(self) -> List[DaySegment]:
        return split_overnight(self.day, self.start_time, self.end_time)

    @property
    def is_overnight(self) -> bool:
        return self.end_time <= self.start_time

    @property
    def first_interval(self) -> Interval:
        return self.segments[0].interval

    @property
    def duration_hours(self) -> float:
        return sum(segment.interval.duration_hours for segment in self.segments)


@dataclass(frozen=True)
class VehicleCandidate:
    vehicle_id: int
    name: str
    capacity: int
    scope: BrandScope

    @classmethod
    def from_vehicle(cls, vehicle: FleetVehicle) -> "VehicleCandidate":
        return cls(
            vehicle_id=vehicle.id,
            name=vehicle.name,
            capacity=vehicle.capacity,
            scope=vehicle.scope,
        )


@dataclass
class AvailableSet:
    """Advisory availability preview, best candidate first."""
    vehicles: List[VehicleCandidate] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.vehicles)

    @property
    def best(self) -> Optional[VehicleCandidate]:
        return self.vehicles[0] if self.vehicles else None


@dataclass(frozen=True)
class HoldToken:
    token: str
    vehicle_id: int
    block_ids: List[int]
    expires_at: datetime
    attempts: int
    state: AllocationState = AllocationState.HELD


@dataclass
class AllocationOutcome:
    """Result of one draft in a batch request."""
    draft: BookingDraft
    state: AllocationState
    hold: Optional[HoldToken] = None
    error: Optional[str] = None
