"""
Shared error handling for the Order Service.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class OrderServiceException(Exception):
    """Base exception for Order Service components."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(OrderServiceException):
    """Malformed or missing input."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class AuthenticationError(OrderServiceException):
    """Missing or rejected credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class InvalidTokenError(AuthenticationError):
    """Token is malformed or its signature does not verify."""

    reason = "invalid"


class TokenExpiredError(AuthenticationError):
    """Token signature is valid but its expiry has passed."""

    reason = "expired"


class TokenRevokedError(AuthenticationError):
    """Token was explicitly revoked by a logout."""

    reason = "revoked"


class ConflictError(OrderServiceException):
    """Uniqueness conflicts such as a taken username."""

    status_code = 409

    def __init__(self, message: str = "Resource already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT_ERROR", message, details)


class NotFoundOrStateError(OrderServiceException):
    """Target absent, owned by someone else, or in the wrong state.

    The three causes are reported identically so that callers cannot probe
    for other users' consignment ids.
    """

    status_code = 404

    def __init__(
        self,
        message: str = "order not found, unauthorized, or cannot cancel",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__("NOT_FOUND_OR_STATE", message, details)


class StorageError(OrderServiceException):
    """Durable store unavailable or query failure."""

    status_code = 503

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class CacheError(OrderServiceException):
    """Cache backend failure. Never surfaced to callers."""

    status_code = 503

    def __init__(self, message: str = "Cache error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ERROR", message, details)


class TokenSigningError(OrderServiceException):
    """Token could not be signed."""

    status_code = 500

    def __init__(self, message: str = "Token signing failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("TOKEN_SIGNING_ERROR", message, details)
