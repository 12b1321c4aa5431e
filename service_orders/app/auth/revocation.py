"""
Revocation stores for logged-out tokens.

Entries are keyed by token id (`jti`) and only need to outlive the token
itself: once a token has expired, signature verification rejects it anyway.
"""

import threading
import time
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StorageError
from shared.logging import get_logger


@runtime_checkable
class RevocationStore(Protocol):
    """Set of revoked token ids."""

    async def add(self, token_id: str, expires_at: float) -> None: ...

    async def contains(self, token_id: str) -> bool: ...


class InMemoryRevocationStore:
    """Process-local revocation set, safe for concurrent callers.

    Expired entries are pruned on write so the set stays bounded by the
    number of live, logged-out tokens.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._revoked: Dict[str, float] = {}

    async def start(self):
        return None

    async def stop(self):
        with self._lock:
            self._revoked.clear()

    async def add(self, token_id: str, expires_at: float) -> None:
        with self._lock:
            self._prune(self._clock())
            self._revoked[token_id] = max(expires_at, self._revoked.get(token_id, 0.0))

    async def contains(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._revoked

    def _prune(self, now: float) -> None:
        for token_id in [t for t, exp in self._revoked.items() if exp <= now]:
            del self._revoked[token_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._revoked)


class RedisRevocationStore:
    """Revocation set shared across instances through Redis key expiry."""

    KEY_PREFIX = "revoked:token:"

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None, clock: Callable[[], float] = time.time):
        self.redis_url = redis_url
        self._clock = clock
        self.redis: Optional[redis.Redis] = client
        self.logger = get_logger("orders.auth.revocation")

    async def start(self):
        if self.redis is None:
            self.redis = redis.from_url(self.redis_url, socket_connect_timeout=5, socket_timeout=5)
        self.logger.info("Redis revocation store started")

    async def stop(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis revocation store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise StorageError("Redis revocation store not started")
        return self.redis

    async def add(self, token_id: str, expires_at: float) -> None:
        ttl = int(expires_at - self._clock()) + 1
        if ttl <= 0:
            return
        try:
            await self._client().set(f"{self.KEY_PREFIX}{token_id}", b"1", ex=ttl)
        except (RedisError, OSError) as e:
            raise StorageError("Failed to record token revocation", details={"error": str(e)}) from e

    async def contains(self, token_id: str) -> bool:
        try:
            return bool(await self._client().exists(f"{self.KEY_PREFIX}{token_id}"))
        except (RedisError, OSError) as e:
            raise StorageError("Failed to read token revocation", details={"error": str(e)}) from e
