"""
Redis cache for the public occupied-slots listing.

Read path only: overlap checks always query the database.
"""

import json
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis

from facility_bookings.settings import REDIS_URL

_redis: Redis | None = None
SLOTS_TTL = 60  # 1 minute


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _slots_key(court_id: UUID) -> str:
    return f"slots:court:{court_id}"


async def get_slots_cache(court_id: UUID) -> list | None:
    try:
        data = await get_redis().get(_slots_key(court_id))
        return json.loads(data) if data else None
    except Exception:
        logger.opt(exception=True).warning("Redis get failed, skipping slots cache")
        return None


async def set_slots_cache(court_id: UUID, slots: list) -> None:
    try:
        await get_redis().setex(_slots_key(court_id), SLOTS_TTL, json.dumps(slots))
    except Exception:
        logger.opt(exception=True).warning("Redis set failed, skipping slots cache")


async def invalidate_slots_cache(*court_ids: UUID) -> None:
    if not court_ids:
        return
    try:
        await get_redis().delete(*(_slots_key(c) for c in court_ids))
    except Exception:
        logger.opt(exception=True).warning("Redis invalidate failed for slots cache")
