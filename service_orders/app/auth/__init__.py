"""
Authentication package.

- tokens: signed bearer tokens with expiry and revocation.
- revocation: in-memory and Redis revocation stores.
- passwords: one-way credential hashing.
- service: signup, login and logout flows.
- gate: middleware that authenticates every protected call.
"""

from .gate import AuthenticationGate, get_bearer_token, get_principal
from .passwords import PasswordHasher
from .revocation import InMemoryRevocationStore, RedisRevocationStore, RevocationStore
from .service import AuthFlows, CredentialsRequest, IssuedToken
from .tokens import TokenClaims, TokenService

__all__ = [
    "AuthenticationGate",
    "AuthFlows",
    "CredentialsRequest",
    "InMemoryRevocationStore",
    "IssuedToken",
    "PasswordHasher",
    "RedisRevocationStore",
    "RevocationStore",
    "TokenClaims",
    "TokenService",
    "get_bearer_token",
    "get_principal",
]
