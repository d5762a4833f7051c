"""
Vehicle Availability Block database model.

The ledger of reserved and blocked time on each vehicle. The storage layer
rejects any two blocks on the same vehicle and date whose [start, end)
intervals overlap: an exclusion constraint on PostgreSQL, an equivalent
trigger pair on SQLite.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, Time, DateTime, Enum,
    ForeignKey, CheckConstraint, Index, DDL, event,
)
from tourfleet.app.db.session import Base
from tourfleet.app.models.availability_enums import BlockType


OVERLAP_CONSTRAINT_NAME = "no_overlapping_vehicle_blocks"


class VehicleAvailabilityBlock(Base):
    """
    Availability Block model.

    Lifecycle:
    - HOLD rows are inserted with hold_expires_at set
    - A HOLD is promoted in place to BOOKING (booking_id linked) or deleted
    - MAINTENANCE rows are created and removed by the fleet admin
    - BUFFER rows pad a booking and are released with it
    """
    __tablename__ = "vehicle_availability_blocks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, ForeignKey('fleet_vehicles.id'), nullable=False, index=True)

    # Same-day half-open interval
    block_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    continues_next_day = Column(Boolean, default=False, nullable=False)

    block_type = Column(Enum(BlockType), nullable=False, index=True)

    # Weak references to externally owned records (no FK, no cascade)
    booking_id = Column(Integer, nullable=True, index=True)
    brand_id = Column(Integer, nullable=True, index=True)
    created_by = Column(Integer, nullable=True)

    # Hold bookkeeping; overnight segments share one token
    hold_token = Column(String(64), nullable=True, index=True)
    party_size = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    # Naive UTC timestamps
    created_at = Column(DateTime, nullable=False)
    hold_expires_at = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_availability_blocks_valid_time_range"),
        Index("ix_availability_blocks_vehicle_date", "vehicle_id", "block_date"),
        # Removed block ids are never handed out again
        {"sqlite_autoincrement": True},
    )

    def __repr__(self):
        return (
            f"<VehicleAvailabilityBlock(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"date={self.block_date}, {self.start_time}-{self.end_time}, type={self.block_type})>"
        )


_table = VehicleAvailabilityBlock.__table__

event.listen(
    _table,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)

event.listen(
    _table,
    "after_create",
    DDL(
        f"ALTER TABLE vehicle_availability_blocks "
        f"ADD CONSTRAINT {OVERLAP_CONSTRAINT_NAME} "
        f"EXCLUDE USING gist ("
        f"vehicle_id WITH =, "
        f"block_date WITH =, "
        f"tsrange(block_date + start_time, block_date + end_time, '[)') WITH &&"
        f")"
    ).execute_if(dialect="postgresql"),
)

# SQLite serializes writers, so a BEFORE trigger is atomic with the write.
event.listen(
    _table,
    "after_create",
    DDL(
        f"CREATE TRIGGER trg_{OVERLAP_CONSTRAINT_NAME}_insert "
        f"BEFORE INSERT ON vehicle_availability_blocks "
        f"FOR EACH ROW WHEN EXISTS ("
        f"SELECT 1 FROM vehicle_availability_blocks b "
        f"WHERE b.vehicle_id = NEW.vehicle_id "
        f"AND b.block_date = NEW.block_date "
        f"AND b.start_time < NEW.end_time "
        f"AND NEW.start_time < b.end_time"
        f") BEGIN SELECT RAISE(ABORT, '{OVERLAP_CONSTRAINT_NAME}'); END"
    ).execute_if(dialect="sqlite"),
)

event.listen(
    _table,
    "after_create",
    DDL(
        f"CREATE TRIGGER trg_{OVERLAP_CONSTRAINT_NAME}_update "
        f"BEFORE UPDATE OF vehicle_id, block_date, start_time, end_time "
        f"ON vehicle_availability_blocks "
        f"FOR EACH ROW WHEN EXISTS ("
        f"SELECT 1 FROM vehicle_availability_blocks b "
        f"WHERE b.id != NEW.id "
        f"AND b.vehicle_id = NEW.vehicle_id "
        f"AND b.block_date = NEW.block_date "
        f"AND b.start_time < NEW.end_time "
        f"AND NEW.start_time < b.end_time"
        f") BEGIN SELECT RAISE(ABORT, '{OVERLAP_CONSTRAINT_NAME}'); END"
    ).execute_if(dialect="sqlite"),
)
