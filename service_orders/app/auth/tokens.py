"""
Token issuance and verification for the Order Service.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt

from shared.errors import (
    AuthenticationError,
    InvalidTokenError,
    StorageError,
    TokenExpiredError,
    TokenRevokedError,
    TokenSigningError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .revocation import InMemoryRevocationStore, RevocationStore

REQUIRED_CLAIMS = ["sub", "user_id", "username", "iat", "exp", "jti"]


@dataclass(frozen=True)
class TokenClaims:
    """Identity asserted by a verified token."""
    username: str
    user_id: int
    token_id: str
    issued_at: int
    expires_at: int


class TokenService:
    """Issues, verifies and revokes signed, time-bounded bearer tokens.

    Verification checks signature, then expiry, then revocation, so a forged
    token never reaches the revocation store.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl_seconds: int = 86400,
        revocation_store: Optional[RevocationStore] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self.revocation_store = revocation_store if revocation_store is not None else InMemoryRevocationStore()
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("orders.auth.tokens")

    def issue(self, username: str, user_id: int) -> str:
        """Sign a token for `username` valid for `ttl_seconds`."""
        issued_at = int(self._clock())
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "username": username,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
            "jti": uuid.uuid4().hex,
        }

        try:
            return jwt.encode(payload, self.secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as e:
            self.logger.error("Token signing failed", error=str(e))
            raise TokenSigningError(details={"error": str(e)}) from e

    async def verify(self, token: str) -> TokenClaims:
        """Return the claims of a valid token or raise an `AuthenticationError`."""
        try:
            claims = self._decode(token)
        except InvalidTokenError:
            self._count("invalid")
            raise

        if claims.expires_at <= self._clock():
            self._count("expired")
            raise TokenExpiredError("Token has expired")

        try:
            revoked = await self.revocation_store.contains(claims.token_id)
        except StorageError as e:
            self.logger.error("Revocation lookup failed", error=str(e))
            self._count("error")
            raise AuthenticationError("Token status unavailable") from e

        if revoked:
            self._count("revoked")
            raise TokenRevokedError("Token has been revoked")

        self._count("valid")
        return claims

    async def revoke(self, token: str) -> None:
        """Add the token to the revocation set. Revoking twice is a no-op."""
        claims = self._decode(token)
        if claims.expires_at <= self._clock():
            return

        await self.revocation_store.add(claims.token_id, float(claims.expires_at))
        self.logger.info("Token revoked", user_id=claims.user_id, token_id=claims.token_id)

    def _decode(self, token: str) -> TokenClaims:
        """Check signature and claim shape. Expiry is checked by the caller."""
        try:
            payload: Dict[str, Any] = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS, "verify_exp": False},
            )
            return TokenClaims(
                username=str(payload["username"]),
                user_id=int(payload["user_id"]),
                token_id=str(payload["jti"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError("Token is invalid", details={"error": str(e)}) from e

    def _count(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_verifications_total", status=status)
