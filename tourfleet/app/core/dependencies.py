"""
Service dependencies for FastAPI.

Wires the allocation service, arbitration policy and compliance overlay
for each request. Tests override get_hos_client and get_redis.
"""

from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from tourfleet.app.core.config import settings
from tourfleet.app.core.redis_client import get_redis
from tourfleet.app.db.session import get_db
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.arbitration import ArbitrationPolicy, PriorityOrderPolicy
from tourfleet.app.services.availability_cache import AvailabilityCache
from tourfleet.app.services.compliance import ComplianceOverlay, HOSClient, build_hos_client


async def get_actor_id(x_actor_id: Optional[int] = Header(None)) -> Optional[int]:
    """
    Identity of the operator or storefront user, for the audit trail.

    Authentication is handled upstream; the header is trusted as given.
    """
    return x_actor_id


def get_hos_client() -> HOSClient:
    return build_hos_client()


def get_arbitration_policy() -> ArbitrationPolicy:
    return PriorityOrderPolicy(settings.brand_priority)


async def get_availability_cache(redis=Depends(get_redis)) -> AvailabilityCache:
    return AvailabilityCache(redis)


async def get_allocation_service(
    db: AsyncSession = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    hos_client: HOSClient = Depends(get_hos_client),
    policy: ArbitrationPolicy = Depends(get_arbitration_policy),
) -> AllocationService:
    return AllocationService(
        db,
        policy,
        compliance=ComplianceOverlay(hos_client),
        cache=cache,
    )
