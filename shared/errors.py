"""
Shared error handling for the transit gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayError(Exception):
    """Base exception for the transit gateway."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(GatewayError):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedOptionError(ValidationError):
    """A structured query parameter could not be parsed."""

    def __init__(self, parameter: str, raw: str, reason: str):
        super().__init__(
            f"Malformed value for '{parameter}': {reason}",
            {"parameter": parameter, "value": raw, "reason": reason},
        )
        self.code = "MALFORMED_OPTION"
        self.parameter = parameter
        self.reason = reason


class BackendError(GatewayError):
    """The upstream journey-planning backend failed, timed out or rejected the request."""

    def __init__(
        self,
        message: str = "Upstream backend error",
        *,
        status_code: Optional[int] = None,
        client_error: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("BACKEND_ERROR", message, details)
        self.upstream_status = status_code
        self.client_error = client_error
        if client_error and status_code == 404:
            self.code = "NOT_FOUND"
            self.status_code = 404
        elif client_error:
            self.code = "BAD_REQUEST"
            self.status_code = 400
        else:
            self.status_code = 502


class CacheUnavailableError(GatewayError):
    """The cache store is unreachable or errored. Recovered inside the cache layer."""

    status_code = 503

    def __init__(self, stage: str, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", f"{stage}: {message}", details)
        self.stage = stage


class HealthCheckTimeoutError(GatewayError):
    """A dependency probe exceeded its deadline."""

    status_code = 503

    def __init__(self, component: str, timeout: float):
        super().__init__(
            "HEALTH_CHECK_TIMEOUT",
            f"{component} probe exceeded {timeout}s",
            {"component": component, "timeout": timeout},
        )
        self.component = component
        self.timeout = timeout
