"""
Password hashing for stored credentials.

Request handlers use the `*_async` variants, which run argon2 in
Starlette's thread pool rather than on the event loop.
"""

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool


class PasswordHasher:
    """Salted, slow one-way hashing through passlib."""

    def __init__(self, schemes=("argon2",)):
        self._context = CryptContext(schemes=list(schemes), deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            # Unrecognised hash format
            return False

    async def hash_async(self, password: str) -> str:
        return await run_in_threadpool(self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        return await run_in_threadpool(self.verify, password, password_hash)
