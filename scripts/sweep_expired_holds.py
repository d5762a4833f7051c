"""
Expired Hold Sweep.

Entry point for the scheduled job (cron, Kubernetes CronJob) that releases
holds past their TTL. Run from the repository root:

    python -m scripts.sweep_expired_holds
"""

import asyncio
import sys

from tourfleet.app.core.config import settings
from tourfleet.app.core.observability import configure_logging, logger
from tourfleet.app.core.redis_client import close_redis, redis_client
from tourfleet.app.db.session import AsyncSessionLocal, engine
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.arbitration import PriorityOrderPolicy
from tourfleet.app.services.availability_cache import AvailabilityCache


async def sweep() -> int:
    async with AsyncSessionLocal() as session:
        service = AllocationService(
            session,
            PriorityOrderPolicy(settings.brand_priority),
            cache=AvailabilityCache(redis_client),
        )
        return await service.sweep_expired_holds()


async def main() -> int:
    configure_logging(settings.log_level)
    try:
        released = await sweep()
    except Exception:
        logger.exception("Hold sweep failed")
        return 1
    finally:
        await close_redis()
        await engine.dispose()

    print(f"Released {released} expired hold block(s)")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
