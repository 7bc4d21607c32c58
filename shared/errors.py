"""
Shared error handling for the Events Aggregator.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AggregatorException(Exception):
    """Base exception for Events Aggregator components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(AggregatorException):
    """Record absent from both the cache and the durable store."""

    def __init__(self, message: str = "Record not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StorageError(AggregatorException):
    """Durable backend unavailable or query failure."""

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class CacheError(AggregatorException):
    """Cache backend unavailable."""

    def __init__(self, message: str = "Cache error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ERROR", message, details)


class DecodeError(AggregatorException):
    """Malformed upstream or persisted payload."""

    def __init__(self, message: str = "Decode error", details: Optional[Dict[str, Any]] = None):
        super().__init__("DECODE_ERROR", message, details)


class FetchError(AggregatorException):
    """Network failure or non-success response from upstream."""

    def __init__(self, message: str = "Upstream fetch failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("FETCH_ERROR", message, details)
