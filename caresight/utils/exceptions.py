"""
Custom Exception Hierarchy

Provides specific exception types for each failure class of an upload flow
with structured error information.

InputError, NetworkError and ApiError abort an upload.
RecommendationError and PersistenceError are side-channel failures that
callers log and swallow.
"""
from typing import Optional, Dict, Any


class CareSightError(Exception):
    """Base exception for all dashboard backend errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class InputError(CareSightError):
    """Bad upload: missing file, wrong extension, missing required fields."""

    def __init__(
        self,
        message: str,
        fields: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
        code: str = "INPUT_ERROR"
    ):
        super().__init__(
            message=message,
            code=code,
            details={"fields": list(fields or []), **(details or {})}
        )
        self.fields = list(fields or [])


class ValidationError(InputError):
    """CSV structure errors (e.g. too few rows)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            code="VALIDATION_ERROR"
        )


class NetworkError(CareSightError):
    """Transport-level failure reaching a prediction service."""

    PREFIX = "Network error: "

    def __init__(
        self,
        message: str,
        url: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        if not message.startswith(self.PREFIX):
            message = f"{self.PREFIX}{message}"
        super().__init__(
            message=message,
            code="NETWORK_ERROR",
            details={"url": url, **(details or {})}
        )
        self.url = url


class ApiError(CareSightError):
    """Non-2xx (or unparseable) response from a prediction service."""

    def __init__(
        self,
        status: int,
        body: str,
        url: str = "unknown",
        reason: str = ""
    ):
        summary = f"{status} {reason}".strip()
        super().__init__(
            message=f"API request failed: {summary} - {body}",
            code="API_ERROR",
            details={"status": status, "body": body, "url": url}
        )
        self.status = status
        self.body = body
        self.url = url


class RecommendationError(CareSightError):
    """Generative-text step failed. Never fatal to an upload."""

    def __init__(
        self,
        message: str,
        domain: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="RECOMMENDATION_ERROR",
            details={"domain": domain, **(details or {})}
        )
        self.domain = domain


class PersistenceError(CareSightError):
    """Patient store read/write failure. Never fatal to an upload."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            details={"operation": operation, **(details or {})}
        )
        self.operation = operation
