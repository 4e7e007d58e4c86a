"""
Custom exception classes for the application.
Each exception carries the HTTP status it is rendered with.
"""

from typing import Any, Optional, Dict


class EarningsApiException(Exception):
    """Base exception class for the earnings API."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(EarningsApiException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class ValidationError(EarningsApiException):
    """Raised when data validation fails."""

    status_code = 422

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(EarningsApiException):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class ConflictError(EarningsApiException):
    """Raised when a change conflicts with the stored state."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class UnsupportedMediaTypeError(EarningsApiException):
    """Raised when an upload has a content type we do not accept."""

    status_code = 406

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "UNSUPPORTED_MEDIA_TYPE", details)


class PayloadTooLargeError(EarningsApiException):
    """Raised when an upload exceeds the configured size limit."""

    status_code = 413

    def __init__(self, max_bytes: int):
        super().__init__(
            f"File too large. Max is {max_bytes} bytes.",
            "PAYLOAD_TOO_LARGE",
            {"max_bytes": max_bytes}
        )


# Earnings-specific exceptions
class EarningsNotFoundError(NotFoundError):
    """Raised when an earnings record is not found."""

    def __init__(self, earnings_id: str):
        super().__init__(
            f"Earnings record not found: {earnings_id}",
            {"earnings_id": earnings_id}
        )


class EarningsMismatchError(ConflictError):
    """Raised when a payment does not match the calculated earnings."""

    def __init__(self, earnings_id: str, fields: list):
        super().__init__(
            f"Earnings {earnings_id}: {', '.join(fields)} do not match the calculated record",
            {"earnings_id": earnings_id, "fields": fields}
        )


class EarningsStatusError(ConflictError):
    """Raised when an earnings record can no longer be paid."""

    def __init__(self, earnings_id: str, status: str):
        super().__init__(
            f"Earnings {earnings_id} is already {status}",
            {"earnings_id": earnings_id, "status": status}
        )
