"""
BookSwap Backend - Shared Schemas
===================================

What:  Response shapes shared by every route: the error envelope and the
       health check. Also the free-text type every request body uses.
"""

import re
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, Field

# C0 controls and DEL, keeping tab, newline and carriage return
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def strip_control_characters(value: Any) -> Any:
    """Remove NUL and other control bytes from user-supplied text."""
    if isinstance(value, str):
        return _CONTROL_CHARACTERS.sub("", value)
    return value


# Cleaned before length checks, so a value made only of control bytes is empty
CleanText = Annotated[str, BeforeValidator(strip_control_characters)]


class FieldError(BaseModel):
    """One invalid input field."""

    field: str = Field(description="Dotted path of the offending field, e.g. 'authors.0'")
    message: str = Field(description="What is wrong with the value")


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error code (e.g., "validation_error", "conflict")
        message: Human-readable description for display to users
        details: Optional extra context (field_errors for validation failures)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "validation_error",
            "message": "Request validation failed",
            "details": {"field_errors": [{"field": "rating", "message": "..."}]},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class SuccessResponse(BaseModel):
    success: bool = True


class CsrfTokenResponse(BaseModel):
    csrf_token: str = Field(description="Send back as X-CSRF-Token on every mutation")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


def field_errors_from_pydantic(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic's error list into [{field, message}].

    The leading location segment ('body', 'query', 'path') is dropped so the
    field name matches the JSON key the client sent.
    """
    flattened = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in {"body", "query", "path", "header", "cookie", "form"}:
            loc = loc[1:]
        flattened.append({
            "field": ".".join(loc) or "__root__",
            "message": err.get("msg", "Invalid value"),
        })
    return flattened
