"""
Shared error handling for the Transcendence vault layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    trace_id: Optional[str] = None
    code: str
    error: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for vault layer services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
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
            error=self.message,
            details=self.details
        )


class Unavailable(GatewayException):
    """Backend or gateway unreachable after all retries."""

    status_code = 503

    def __init__(self, message: str = "Service unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNAVAILABLE", message, details)


class NotFound(GatewayException):
    """No document at the requested path."""

    status_code = 404

    def __init__(self, message: str = "Secret not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class InvalidArgument(GatewayException):
    """Malformed request; never retried."""

    status_code = 400

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ARGUMENT", message, details)


class ValidationFailed(GatewayException):
    """A fetched configuration section failed shape or strength checks."""

    status_code = 422

    def __init__(self, section: str, message: str = "Validation failed",
                 details: Optional[Dict[str, Any]] = None):
        self.section = section
        super().__init__("VALIDATION_FAILED", f"{section}: {message}", details)


class Conflict(GatewayException):
    """A check-and-set write lost against a concurrent writer."""

    status_code = 409

    def __init__(self, message: str = "Concurrent modification", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class AlreadyExists(GatewayException):
    """Backend object already present."""

    status_code = 409

    def __init__(self, message: str = "Already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__("ALREADY_EXISTS", message, details)


class SectionFetchError(Unavailable):
    """Fetching a configuration section exhausted its attempts."""

    def __init__(self, section: str, attempts: int, last_error: Exception):
        self.section = section
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to fetch section '{section}' after {attempts} attempts: "
            f"{type(last_error).__name__}",
            details={"section": section, "attempts": attempts}
        )
