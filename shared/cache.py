"""
Redis cache in front of the lease store.

The cache is advisory: every write path invalidates the keys it affects and
every read path falls back to the database. Redis failures are logged and
treated as misses so the cache can never block or corrupt a lease operation.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID
import redis.asyncio as redis

from shared.config import settings
from shared.redis_client import RedisClient

logger = logging.getLogger(__name__)

# Key layout
ALL_CARS_KEY = "cars:all"


def car_key(car_id: UUID) -> str:
    return f"car:{car_id}"


def lease_key(lease_id: UUID) -> str:
    return f"lease:{lease_id}"


def user_leases_key(user_id: str) -> str:
    return f"leases:{user_id}"


def payment_history_key(user_id: str) -> str:
    return f"payment_history:{user_id}"


class LeaseCache:
    """Cache-aside helper over a Redis client."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.cache_ttl_seconds

    async def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = await RedisClient.get_client()
        return self._redis

    async def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value, or None on miss or error."""
        try:
            client = await self._client()
            raw = await client.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store a JSON-serializable value with a TTL."""
        try:
            client = await self._client()
            await client.setex(
                key,
                ttl_seconds or self.ttl_seconds,
                json.dumps(value, default=str),
            )
            return True
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    async def delete(self, *keys: str) -> bool:
        """Evict keys."""
        if not keys:
            return True
        try:
            client = await self._client()
            await client.delete(*keys)
            logger.debug(f"Evicted cache keys: {keys}")
            return True
        except Exception as e:
            logger.warning(f"Cache eviction failed for {keys}: {e}")
            return False

    async def invalidate_car(self, car_id: UUID) -> bool:
        """Evict the car detail and the full car list."""
        return await self.delete(car_key(car_id), ALL_CARS_KEY)

    async def invalidate_user(self, user_id: str) -> bool:
        """Evict a user's lease list and payment history."""
        return await self.delete(user_leases_key(user_id), payment_history_key(user_id))

    async def invalidate_lease(self, lease_id: UUID, user_id: str, car_id: UUID) -> bool:
        """Evict every cached view that references the lease."""
        return await self.delete(
            lease_key(lease_id),
            user_leases_key(user_id),
            payment_history_key(user_id),
            car_key(car_id),
            ALL_CARS_KEY,
        )
