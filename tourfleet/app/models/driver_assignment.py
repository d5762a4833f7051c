"""
Driver Assignment database model.

Pairs a driver with the vehicle of one availability block.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from tourfleet.app.db.session import Base


class DriverAssignment(Base):
    """
    Driver Assignment model.

    One row per block. Created at commit, mutated only by reassignment,
    deleted together with its block.
    """
    __tablename__ = "driver_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    block_id = Column(
        Integer,
        ForeignKey('vehicle_availability_blocks.id', ondelete="CASCADE"),
        nullable=False,
    )
    driver_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('fleet_vehicles.id'), nullable=False)

    assigned_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("block_id", name="uq_driver_assignments_block"),
    )

    def __repr__(self):
        return f"<DriverAssignment(block_id={self.block_id}, driver_id={self.driver_id})>"
