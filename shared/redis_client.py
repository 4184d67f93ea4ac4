"""Redis connection management for the cache and the event bus."""

import redis.asyncio as redis
import logging
from typing import Optional
from shared.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Process-wide Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None
    _pool: Optional[redis.ConnectionPool] = None

    @classmethod
    async def get_client(cls) -> redis.Redis:
        """Get or create Redis client."""
        if cls._instance is None:
            cls._instance = await cls._create_client()
        return cls._instance

    @classmethod
    async def _create_client(cls) -> redis.Redis:
        pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=20,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        cls._pool = pool
        client = redis.Redis(connection_pool=pool)

        try:
            await client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

        return client

    @classmethod
    async def is_healthy(cls) -> bool:
        """Ping Redis; False if it cannot be reached."""
        try:
            client = await cls.get_client()
            return bool(await client.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None
            logger.info("Redis connection closed")

        if cls._pool is not None:
            await cls._pool.disconnect()
            cls._pool = None
