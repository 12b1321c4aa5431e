"""
Structured JSON logging for the Order Service.

Every event carries the correlation fields of the call that produced it:

- request_id: taken from `X-Request-ID` (or generated) by the request-timing
  middleware in `BaseService`, and echoed back on the response.
- user_id: the caller the authentication gate resolved from the bearer token.
  Unauthenticated calls (signup, login, probes) have none.
- trace_id / span_id: present while an OpenTelemetry span is recording.

Correlation lives in `contextvars`, so it follows the request into the
handler task and is reset by `clear_context` when the request ends.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Optional, Union
from contextvars import ContextVar

from opentelemetry import trace

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging and render one JSON object per event."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_trace_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive `service` from the logger name, e.g. `orders.engine` -> `orders`."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the ids of the recording span, if any."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        if span_context.span_id != 0:
            event_dict["span_id"] = f"{span_context.span_id:016x}"

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the current request id and authenticated user id."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    user_id = user_id_var.get()
    if user_id:
        event_dict["user_id"] = user_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Epoch seconds alongside the ISO string, for sorting in log stores
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the caller's request id, or a fresh UUID, and return it."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[Union[int, str]] = None):
    """Bind the authenticated caller for the rest of the request."""
    if user_id is not None:
        user_id_var.set(str(user_id))


def clear_context():
    """Drop request and user correlation once the response is sent."""
    request_id_var.set(None)
    user_id_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger; name it `orders.<component>`."""
    return structlog.get_logger(name)
