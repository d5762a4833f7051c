"""
Audit logging service for tracking ledger mutations and admin actions.

Audit rows join the caller's transaction: a rolled-back allocation leaves
no audit trail behind.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from tourfleet.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Hold workflow
    HOLD_PLACED = "HOLD_PLACED"
    HOLD_COMMITTED = "HOLD_COMMITTED"
    HOLD_RELEASED = "HOLD_RELEASED"
    HOLD_EXPIRED = "HOLD_EXPIRED"

    # Booking administration
    BOOKING_RELEASED = "BOOKING_RELEASED"
    VEHICLE_REASSIGNED = "VEHICLE_REASSIGNED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    COMPLIANCE_BLOCKED = "COMPLIANCE_BLOCKED"

    # Maintenance windows
    MAINTENANCE_BLOCK_CREATED = "MAINTENANCE_BLOCK_CREATED"
    MAINTENANCE_BLOCK_REMOVED = "MAINTENANCE_BLOCK_REMOVED"

    # Fleet management
    VEHICLE_CREATED = "VEHICLE_CREATED"
    VEHICLE_UPDATED = "VEHICLE_UPDATED"
    VEHICLE_DEACTIVATED = "VEHICLE_DEACTIVATED"
    BLACKOUT_DATE_CREATED = "BLACKOUT_DATE_CREATED"


def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    vehicle_id: Optional[int] = None,
    block_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Add an audit event to the current transaction.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system)
        vehicle_id: Vehicle affected
        block_id: Availability block affected
        booking_id: External booking affected
        metadata: Additional context as JSON

    Returns:
        Pending AuditLog instance (persisted on commit)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        vehicle_id=vehicle_id,
        block_id=block_id,
        booking_id=booking_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    booking_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        booking_id: Filter by booking
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if booking_id:
        query = query.where(AuditLog.booking_id == booking_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
