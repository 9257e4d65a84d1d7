"""Redis availability cache.

Implements AvailabilityCachePort on redis.asyncio. The cache is never
authoritative, so every Redis error is logged and turned into a miss or a
no-op; ping() reports reachability for the recovery task.
"""

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from innkeeper.core.ports import AvailabilityCachePort

logger = logging.getLogger(__name__)


class RedisAvailabilityCache(AvailabilityCachePort):
    """Redis-backed cache for the available-unit count."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        ttl_seconds: int | None = None,
        client: Redis | None = None,
    ):
        """Initialize the cache.

        Args:
            redis_url: Connection URL used when no client is given.
            ttl_seconds: Expiry for written values. None means no expiry.
            client: Pre-built client, mainly for tests.
        """
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self._client = client or Redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def get(self, key: str) -> int | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.warning(f"Redis GET {key} failed, treating as miss: {e}")
            return None

        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding non-integer cache value for {key}: {raw!r}")
            return None

    async def put(self, key: str, value: int) -> None:
        try:
            await self._client.set(key, value, ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning(f"Redis SET {key} failed: {e}")

    async def invalidate(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            logger.warning(f"Redis DEL {key} failed: {e}")

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.debug(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis client: {e}")
        logger.info("Redis cache client closed")
