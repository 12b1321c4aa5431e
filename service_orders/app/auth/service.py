"""
Signup, login and logout flows.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from shared.errors import AuthenticationError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..orders.models import User
from ..persistence.base import OrderRepository
from .passwords import PasswordHasher
from .tokens import TokenService

INVALID_CREDENTIALS = "invalid credentials"


class CredentialsRequest(BaseModel):
    """Signup and login body."""
    username: str = Field("", description="Unique username")
    password: str = Field("", description="Plain-text password")


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    token_type: str
    expires_in: int


class AuthFlows:
    """Credential checks layered over the user store and the token service."""

    def __init__(
        self,
        repository: OrderRepository,
        tokens: TokenService,
        hasher: Optional[PasswordHasher] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository
        self.tokens = tokens
        self.hasher = hasher or PasswordHasher()
        # Logins for unknown usernames are verified against this hash
        self._unknown_user_hash = self.hasher.hash(uuid.uuid4().hex)
        self.metrics = metrics
        self.logger = get_logger("orders.auth")

    async def signup(self, username: str, password: str) -> User:
        if not username or not password:
            raise ValidationError("username and password are required")

        user = await self.repository.create_user(username, await self.hasher.hash_async(password))

        self.logger.info("User signed up", user_id=user.user_id)
        self._record_event("user_signed_up")
        return user

    async def login(self, username: str, password: str) -> IssuedToken:
        """Exchange credentials for a bearer token.

        Unknown users and wrong passwords produce the same error so callers
        cannot probe which usernames exist.
        """
        user = await self.repository.find_user_by_username(username) if username else None
        password_hash = user.password_hash if user is not None else self._unknown_user_hash
        verified = await self.hasher.verify_async(password, password_hash)
        if user is None or not verified:
            self.logger.info("Login rejected")
            raise AuthenticationError(INVALID_CREDENTIALS)

        token = self.tokens.issue(user.username, user.user_id)

        self.logger.info("User logged in", user_id=user.user_id)
        self._record_event("user_logged_in")
        return IssuedToken(access_token=token, token_type="Bearer", expires_in=self.tokens.ttl_seconds)

    async def logout(self, token: str) -> None:
        await self.tokens.revoke(token)
        self._record_event("user_logged_out")

    def _record_event(self, event_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_business_event(event_type)
