"""
Redis caching layer for the Order Service.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import CacheError


class RedisCache:
    """Redis-backed `CacheBackend`."""

    SCAN_BATCH_SIZE = 500

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("orders.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

        try:
            await self.redis.ping()
        except (RedisError, OSError) as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheError("Redis unavailable", details={"error": str(e)}) from e

        self.logger.info("Redis cache started")

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis cache not started")
        return self.redis

    async def get(self, key: str) -> Optional[bytes]:
        try:
            value = await self._client().get(key)
        except (RedisError, OSError) as e:
            raise CacheError("Redis GET failed", details={"key": key, "error": str(e)}) from e

        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        try:
            await self._client().set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise CacheError("Redis SET failed", details={"key": key, "error": str(e)}) from e

        self.logger.debug("Cached value", cache_key=key, ttl=ttl_seconds)

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with `prefix` using SCAN, not KEYS."""
        client = self._client()
        deleted = 0
        batch = []
        try:
            async for key in client.scan_iter(match=f"{prefix}*", count=self.SCAN_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= self.SCAN_BATCH_SIZE:
                    deleted += await client.delete(*batch)
                    batch = []
            if batch:
                deleted += await client.delete(*batch)
        except (RedisError, OSError) as e:
            raise CacheError("Redis prefix delete failed", details={"prefix": prefix, "error": str(e)}) from e

        self.logger.debug("Deleted keys by prefix", prefix=prefix, count=deleted)
        return deleted

    async def ping(self) -> None:
        try:
            await self._client().ping()
        except (RedisError, OSError) as e:
            raise CacheError("Redis PING failed", details={"error": str(e)}) from e
