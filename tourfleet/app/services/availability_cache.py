"""
Availability preview cache.

Redis-backed cache for check_availability results. Advisory only: the
ledger never reads it, and every ledger write drops the entries for the
dates it touched. Redis errors degrade to a cache miss.
"""

import json
import logging
from datetime import date
from typing import Iterable, Optional, Sequence

from redis.exceptions import RedisError

from tourfleet.app.core.config import settings
from tourfleet.app.models.fleet_vehicle import Dedicated, SharedPool
from tourfleet.app.services.allocation_types import AvailableSet, BookingDraft, VehicleCandidate

logger = logging.getLogger("tourfleet")

KEY_PREFIX = "availability"


class AvailabilityCache:

    def __init__(self, client, ttl_seconds: int = settings.availability_cache_ttl_seconds):
        self.client = client
        self.ttl_seconds = ttl_seconds

    async def get(self, draft: BookingDraft, vehicle_ids: Optional[Sequence[int]] = None) -> Optional[AvailableSet]:
        try:
            raw = await self.client.get(_preview_key(draft, vehicle_ids))
        except RedisError as exc:
            logger.warning("Availability cache read failed", extra={"error": str(exc)})
            return None

        if raw is None:
            return None
        return _decode(raw)

    async def set(self, draft: BookingDraft, vehicle_ids: Optional[Sequence[int]], preview: AvailableSet) -> None:
        key = _preview_key(draft, vehicle_ids)
        try:
            await self.client.set(key, _encode(preview), ex=self.ttl_seconds)
            for segment in draft.segments:
                index_key = _index_key(segment.day)
                await self.client.sadd(index_key, key)
                await self.client.expire(index_key, self.ttl_seconds)
        except RedisError as exc:
            logger.warning("Availability cache write failed", extra={"error": str(exc)})

    async def invalidate(self, days: Iterable[date]) -> None:
        """Drop every cached preview touching any of the dates."""
        try:
            for day in set(days):
                index_key = _index_key(day)
                keys = await self.client.smembers(index_key)
                for key in keys:
                    await self.client.delete(key)
                await self.client.delete(index_key)
        except RedisError as exc:
            logger.warning("Availability cache invalidation failed", extra={"error": str(exc)})

    async def invalidate_all(self) -> None:
        """Drop every cached preview, after a fleet-wide change."""
        try:
            async for key in self.client.scan_iter(match=f"{KEY_PREFIX}:*"):
                await self.client.delete(key)
        except RedisError as exc:
            logger.warning("Availability cache flush failed", extra={"error": str(exc)})


def _index_key(day: date) -> str:
    return f"{KEY_PREFIX}:index:{day.isoformat()}"


def _preview_key(draft: BookingDraft, vehicle_ids: Optional[Sequence[int]]) -> str:
    vehicles = ",".join(str(v) for v in sorted(vehicle_ids)) if vehicle_ids else "all"
    return (
        f"{KEY_PREFIX}:{draft.brand_id}:{draft.day.isoformat()}:"
        f"{draft.start_time.isoformat()}-{draft.end_time.isoformat()}:"
        f"{draft.party_size}:{vehicles}"
    )


def _encode(preview: AvailableSet) -> str:
    return json.dumps({
        "vehicles": [
            {
                "vehicle_id": c.vehicle_id,
                "name": c.name,
                "capacity": c.capacity,
                "home_brand_id": c.scope.brand_id if isinstance(c.scope, Dedicated) else None,
            }
            for c in preview.vehicles
        ],
        "reasons": preview.reasons,
    })


def _decode(raw) -> AvailableSet:
    if isinstance(raw, bytes):
        raw = raw.decode()
    payload = json.loads(raw)
    vehicles = [
        VehicleCandidate(
            vehicle_id=item["vehicle_id"],
            name=item["name"],
            capacity=item["capacity"],
            scope=Dedicated(item["home_brand_id"]) if item["home_brand_id"] is not None else SharedPool(),
        )
        for item in payload["vehicles"]
    ]
    return AvailableSet(vehicles=vehicles, reasons=payload["reasons"])
