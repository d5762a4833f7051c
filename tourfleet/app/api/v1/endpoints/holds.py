"""
Hold API Endpoints.

Tentative reservations: place, commit, release.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, status

from tourfleet.app.core.dependencies import get_actor_id, get_allocation_service
from tourfleet.app.schemas.availability import (
    AvailabilityBlockResponse, BatchHoldOutcome, BatchHoldRequest, BatchHoldResponse,
    CommitRequest, CommitResponse, HoldResponse, TourRequest,
)
from tourfleet.app.schemas.booking import ReleaseResponse
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.allocation_types import HoldToken

router = APIRouter(prefix="/holds", tags=["Holds"])


def _hold_response(hold: HoldToken) -> HoldResponse:
    return HoldResponse(
        hold_token=hold.token,
        vehicle_id=hold.vehicle_id,
        block_ids=hold.block_ids,
        expires_at=hold.expires_at,
        attempts=hold.attempts,
        state=hold.state,
    )


@router.post("", response_model=HoldResponse, status_code=status.HTTP_201_CREATED)
async def request_hold(
    request: TourRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Hold the best free vehicle for a tour.

    Returns 409 when every candidate vehicle was taken.
    """
    hold = await service.request_hold(request.to_draft(created_by=actor_id), request.candidate_vehicle_ids)
    return _hold_response(hold)


@router.post("/batch", response_model=BatchHoldResponse)
async def request_holds_batch(
    request: BatchHoldRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """Competing requests, served in brand priority order."""
    outcomes = await service.request_holds_batch([r.to_draft(created_by=actor_id) for r in request.requests])

    return BatchHoldResponse(outcomes=[
        BatchHoldOutcome(
            brand_id=o.draft.brand_id,
            tour_date=o.draft.day,
            start_time=o.draft.start_time,
            end_time=o.draft.end_time,
            state=o.state,
            hold=_hold_response(o.hold) if o.hold else None,
            error=o.error,
        )
        for o in outcomes
    ])


@router.post("/{hold_token}/commit", response_model=CommitResponse)
async def commit_hold(
    request: CommitRequest,
    hold_token: str = Path(..., min_length=1, max_length=64),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """
    Confirm a hold as a booking, optionally with a driver.

    410 if the hold expired, 422 if the driver fails compliance.
    """
    blocks = await service.commit(
        hold_token,
        request.booking_id,
        driver_id=request.driver_id,
        trip_points=[(p.lat, p.lng) for p in request.trip_points] if request.trip_points else None,
        origin=(request.origin.lat, request.origin.lng) if request.origin else None,
        actor_id=actor_id,
    )

    return CommitResponse(
        booking_id=request.booking_id,
        driver_id=request.driver_id,
        blocks=[AvailabilityBlockResponse.model_validate(b) for b in blocks],
    )


@router.delete("/{hold_token}", response_model=ReleaseResponse)
async def release_hold(
    hold_token: str = Path(..., min_length=1, max_length=64),
    actor_id: Optional[int] = Depends(get_actor_id),
    service: AllocationService = Depends(get_allocation_service)
):
    """Release a hold. Releasing twice is not an error."""
    released = await service.cancel(hold_token=hold_token, actor_id=actor_id)
    return ReleaseResponse(released=released)
