"""
Admin Operations API Endpoints.

Hooks for the scheduled hold sweep and booking reconciliation.
"""

from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.dependencies import get_allocation_service
from tourfleet.app.db.session import get_db
from tourfleet.app.schemas.admin import ReconcileRequest, ReconcileResponse, SweepRequest, SweepResponse
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.reconciliation import reconcile_bookings

router = APIRouter(prefix="/admin", tags=["Admin - Ops"])


@router.post("/holds/sweep", response_model=SweepResponse)
async def sweep_expired_holds(
    request: Optional[SweepRequest] = None,
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Release holds past their TTL.

    Called by the scheduled job; safe to call at any time.
    """
    swept_at = (request.as_of if request else None) or service.clock()
    released = await service.sweep_expired_holds(swept_at)
    return SweepResponse(released_blocks=released, swept_at=swept_at)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    request: ReconcileRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Check confirmed bookings against the ledger.

    500 with the missing booking ids if any booking has lost its block.
    """
    checked = await reconcile_bookings(db, request.booking_ids)
    return ReconcileResponse(checked=checked, consistent=True)
