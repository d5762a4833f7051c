"""
Audit Log Database Model.

Tracks every ledger mutation and fleet admin action.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from tourfleet.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking allocation events and admin actions.

    Events logged:
    - HOLD_PLACED / HOLD_COMMITTED / HOLD_RELEASED / HOLD_EXPIRED
    - BOOKING_RELEASED / VEHICLE_REASSIGNED / DRIVER_ASSIGNED
    - MAINTENANCE_BLOCK_CREATED / MAINTENANCE_BLOCK_REMOVED
    - COMPLIANCE_BLOCKED
    - VEHICLE_CREATED / VEHICLE_UPDATED / VEHICLE_DEACTIVATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions such as the hold sweep)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    vehicle_id = Column(Integer, index=True, nullable=True)
    block_id = Column(Integer, nullable=True)
    booking_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', vehicle={self.vehicle_id}, booking={self.booking_id})>"
