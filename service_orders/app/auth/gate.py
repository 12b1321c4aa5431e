"""
Request authentication gate.
"""

from typing import Awaitable, Callable, FrozenSet

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context

from .tokens import TokenClaims, TokenService

PUBLIC_OPERATIONS: FrozenSet[str] = frozenset({"/auth/login", "/auth/signup"})
PROBE_PATHS: FrozenSet[str] = frozenset({"/", "/health", "/metrics", "/docs", "/redoc", "/openapi.json"})

BEARER_PREFIX = "Bearer "


class AuthenticationGate(BaseHTTPMiddleware):
    """Admit login, signup and probes; require a valid bearer token elsewhere.

    Every failure kind produces the same 401 reply. The kind is only logged.
    """

    def __init__(self, app, tokens: TokenService):
        super().__init__(app)
        self.tokens = tokens
        self.logger = get_logger("orders.auth.gate")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        path = request.url.path
        if path in PUBLIC_OPERATIONS or path in PROBE_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            self.logger.info("Missing authorization header", path=path)
            return unauthenticated()

        if not auth_header.startswith(BEARER_PREFIX):
            self.logger.info("Invalid authorization header format", path=path)
            return unauthenticated()

        token = auth_header[len(BEARER_PREFIX):].strip()
        try:
            claims = await self.tokens.verify(token)
        except AuthenticationError as e:
            self.logger.warning(
                "Token rejected",
                path=path,
                reason=getattr(e, "reason", "unavailable"),
            )
            return unauthenticated()

        request.state.principal = claims
        request.state.token = token
        request.state.user_info = {"user_id": claims.user_id, "username": claims.username}
        set_user_context(claims.user_id)

        return await call_next(request)


def unauthenticated() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            "message": "Unauthorized",
            "type": "error",
            "code": 401,
            "error": {
                "code": "AUTHENTICATION_ERROR",
                "message": "Unauthorized",
                "details": {},
            },
        },
    )


def get_principal(request: Request) -> TokenClaims:
    """FastAPI dependency returning the identity the gate attached."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError("Unauthorized")
    return principal


def get_bearer_token(request: Request) -> str:
    token = getattr(request.state, "token", None)
    if token is None:
        raise AuthenticationError("Unauthorized")
    return token
