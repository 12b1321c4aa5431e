"""
Cache backend contract consumed by the order engine.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    """Key to bytes store with TTL-on-write and prefix deletion.

    Implementations raise `shared.errors.CacheError` for backend failures.
    A missing key is `None`, never an error.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...

    async def ping(self) -> None: ...
