"""
Cache package for the Order Service.

Holds the `CacheBackend` contract used by the order engine for cache-aside
listings, a Redis implementation for deployments and an in-process one for
local runs and tests.
"""

from .base import CacheBackend
from .memory_cache import InMemoryCache
from .redis_cache import RedisCache

__all__ = ["CacheBackend", "InMemoryCache", "RedisCache"]
