"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from tourfleet.app.api.v1.endpoints import (
    availability, holds, bookings, maintenance, fleet, admin_ops
)

router = APIRouter()

# Storefront-facing allocation endpoints
router.include_router(availability.router)
router.include_router(holds.router)
router.include_router(bookings.router)

# Fleet admin endpoints
router.include_router(maintenance.router)
router.include_router(fleet.router)

# Scheduled job and operator hooks
router.include_router(admin_ops.router)
