"""
Common Pydantic schemas for API responses and requests.
Provides base classes and common data structures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, Field
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel):
    """Base API response model."""

    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class SortOrder(str, Enum):
    """Sort order enumeration."""
    ASC = "asc"
    DESC = "desc"


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = "0.1.0"
    services: Dict[str, str] = Field(
        default_factory=lambda: {
            "database": "healthy",
            "api": "healthy"
        }
    )


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Reduce pydantic error dicts to JSON-safe ``field``/``message``/``type`` entries.

    Raw ``ctx`` values can hold exception instances, so they are dropped.
    """
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        formatted.append({
            "field": ".".join(loc) or None,
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type", "value_error"),
        })
    return formatted


def create_error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )
