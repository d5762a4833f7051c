"""
Fleet Vehicle database model.

Tour vehicles with seating capacity and a brand scope. A vehicle is either
dedicated to one storefront brand or pooled across all of them.
"""

from dataclasses import dataclass
from typing import Union

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, CheckConstraint
from sqlalchemy.sql import func
from tourfleet.app.db.session import Base
from tourfleet.app.models.availability_enums import SharingMode


@dataclass(frozen=True)
class Dedicated:
    """Vehicle serves only its home brand."""
    brand_id: int


@dataclass(frozen=True)
class SharedPool:
    """Vehicle is available to every brand."""


BrandScope = Union[Dedicated, SharedPool]


class FleetVehicle(Base):
    """
    Fleet Vehicle model.

    Vehicles are created by the fleet admin and never hard-deleted;
    retired vehicles are deactivated. Availability blocks reference them by id.
    """
    __tablename__ = "fleet_vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Vehicle identification
    vehicle_number = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)  # e.g., "Mercedes Sprinter 14"
    vehicle_type = Column(String(100), nullable=True)  # e.g., "Sprinter", "Limo", "Coach"

    # Seating capacity (passengers)
    capacity = Column(Integer, nullable=False)

    # Brand scope
    sharing_mode = Column(Enum(SharingMode), nullable=False, default=SharingMode.SHARED)
    home_brand_id = Column(Integer, nullable=True, index=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_fleet_vehicles_capacity_positive"),
        CheckConstraint(
            "(sharing_mode = 'DEDICATED' AND home_brand_id IS NOT NULL) OR "
            "(sharing_mode = 'SHARED' AND home_brand_id IS NULL)",
            name="ck_fleet_vehicles_brand_scope",
        ),
    )

    @property
    def scope(self) -> BrandScope:
        if self.sharing_mode == SharingMode.DEDICATED:
            return Dedicated(self.home_brand_id)
        return SharedPool()

    def set_scope(self, scope: BrandScope) -> None:
        if isinstance(scope, Dedicated):
            self.sharing_mode = SharingMode.DEDICATED
            self.home_brand_id = scope.brand_id
        else:
            self.sharing_mode = SharingMode.SHARED
            self.home_brand_id = None

    def __repr__(self):
        return f"<FleetVehicle(id={self.id}, number='{self.vehicle_number}', capacity={self.capacity})>"
