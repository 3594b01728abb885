import json
from uuid import UUID

from fastapi import Request
from loguru import logger
from redis.asyncio import Redis

BLOCKED_TTL = 60  # 1 minute


def _blocked_key(car_id: UUID) -> str:
    return f"blocked:{car_id}"


class BlockedRangesCache:
    """
    Short-lived cache of the date ranges held on each vehicle.
    Every Redis failure is logged and treated as a miss; the database stays
    the only source of truth for availability decisions.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "BlockedRangesCache":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, car_id: UUID) -> list | None:
        try:
            data = await self._redis.get(_blocked_key(car_id))
            return json.loads(data) if data else None
        except Exception:
            logger.warning("Redis get failed, skipping blocked-ranges cache", exc_info=True)
            return None

    async def set(self, car_id: UUID, ranges: list) -> None:
        try:
            await self._redis.setex(_blocked_key(car_id), BLOCKED_TTL, json.dumps(ranges))
        except Exception:
            logger.warning("Redis set failed, skipping blocked-ranges cache", exc_info=True)

    async def invalidate(self, car_id: UUID) -> None:
        try:
            await self._redis.delete(_blocked_key(car_id))
        except Exception:
            logger.warning("Redis invalidate failed for blocked-ranges cache", exc_info=True)

    async def close(self) -> None:
        await self._redis.aclose()


def get_blocked_cache(request: Request) -> BlockedRangesCache:
    return request.app.state.blocked_cache
