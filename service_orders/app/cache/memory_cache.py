"""
In-process cache for local runs and tests.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from shared.logging import get_logger


class InMemoryCache:
    """`CacheBackend` holding entries in a dict with monotonic expiry.

    Expired entries are pruned on every write, so the dict is bounded by the
    keys written within one TTL.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.logger = get_logger("orders.cache.memory")
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    async def start(self):
        self.logger.info("In-memory cache started")

    async def stop(self):
        with self._lock:
            self._entries.clear()

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._entries[key] = (value, now + ttl_seconds)

    async def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    async def ping(self) -> None:
        return None

    def _prune(self, now: float) -> None:
        for key in [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
