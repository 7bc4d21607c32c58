"""
Structured logging for the Events Aggregator.

Every line is a JSON object with an ISO-8601 ``timestamp``. HTTP handlers
bind a ``request_id`` and the ingestion worker binds a ``cycle_id``, so all
lines emitted while serving one request or running one cycle can be joined.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar, Token

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
cycle_id_var: ContextVar[Optional[str]] = ContextVar('cycle_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
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
    """Tag events with the top-level component, e.g. ``events`` for ``events.repository``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the request or ingestion cycle currently being served."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    cycle_id = cycle_id_var.get()
    if cycle_id:
        event_dict["cycle_id"] = cycle_id

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def bind_cycle_id() -> Token:
    """Start a new ingestion cycle context; pass the token to ``reset_cycle_id``."""
    return cycle_id_var.set(uuid.uuid4().hex[:12])


def reset_cycle_id(token: Token) -> None:
    cycle_id_var.reset(token)


def clear_context():
    """Clear the request context."""
    request_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
