"""
Redis client for the availability preview cache.

The cache is advisory, so short socket timeouts keep a slow Redis from
holding up availability checks.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from tourfleet.app.core.config import settings

logger = logging.getLogger("tourfleet")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
    socket_timeout=settings.redis_socket_timeout_seconds,
    socket_connect_timeout=settings.redis_socket_timeout_seconds,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    """True if the cache answers, for the health check."""
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("Availability cache unreachable", extra={"error": str(exc)})
        return False


async def close_redis() -> None:
    await redis_client.aclose()
