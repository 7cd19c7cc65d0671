"""
BookSwap Backend - Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception class carries a message, an optional context dict, a
       machine-readable `error_code` and the HTTP `status_code` it maps to.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses.
Who:   Raised by services, dependencies and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    BookSwapError (base)
    ├── UnauthorizedError        → 401 (no or invalid session)
    ├── ForbiddenError           → 403 (authenticated but not allowed)
    │   └── CsrfError            → 403 (missing or mismatched CSRF token)
    ├── ValidationError          → 400 (carries field-level errors)
    ├── NotFoundError            → 404
    ├── ConflictError            → 409 (duplicate resource, illegal transition)
    │   └── InvalidOperationError → 400 (invalid swap target)
    ├── RateLimitExceededError   → 429
    ├── FileStorageError         → 500
    └── DatabaseError            → 500
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError


class BookSwapError(Exception):
    """
    Base exception for all BookSwap application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional info; returned as `details` for client errors,
                  logged only for server errors
    """

    error_code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class UnauthorizedError(BookSwapError):
    """Raised when the request carries no session or the session token is invalid."""

    error_code = "unauthorized"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(BookSwapError):
    """
    Raised when an authenticated caller acts on something they don't own.

    When:    A non-participant reads a swap, a requester tries to accept their
             own request, a non-owner edits a book.
    """

    error_code = "forbidden"
    status_code = 403

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CsrfError(ForbiddenError):
    """Raised when a state-changing request lacks a valid CSRF token."""

    error_code = "csrf_error"

    def __init__(
        self,
        message: str = "Invalid or missing CSRF token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ValidationError(BookSwapError):
    """
    Raised when client input fails validation.

    What:    The client sent invalid data that can be corrected.
    HTTP:    400 Bad Request

    Every validation error carries a list of field errors so clients can
    highlight the offending inputs:

        {
            "error": "validation_error",
            "message": "Request validation failed",
            "details": {"field_errors": [{"field": "rating", "message": "..."}]}
        }
    """

    error_code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        field_errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field_errors is None:
            field_errors = [{"field": field, "message": message}] if field else []
        ctx["field_errors"] = field_errors
        super().__init__(message=message, context=ctx)
        self.field = field
        self.field_errors = field_errors


class NotFoundError(BookSwapError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that
    to NotFoundError so routes never deal with None checks.
    """

    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(BookSwapError):
    """
    Raised for duplicate resources and illegal state transitions.

    When:    Duplicate catalogue id for the same owner, accepting a swap that is
             no longer pending, a concurrent update that lost the compare-and-set.
    """

    error_code = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str = "The request conflicts with the current state of the resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidOperationError(ConflictError):
    """
    Raised when a swap targets a book that cannot be requested.

    What:    The book is unavailable or belongs to the requester.
    HTTP:    400 Bad Request (the client picked the wrong target)
    """

    error_code = "invalid_operation"
    status_code = 400


class FileStorageError(BookSwapError):
    """
    Raised when file system operations fail.

    The client gets a generic message; the OS error and path are logged.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(BookSwapError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        Constraint names and SQL are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(BookSwapError):
    """
    Raised when a caller exceeds its rate limit tier.

    Response includes:
        - retry_after: Seconds until the current window resets
        - Retry-After header for HTTP-compliant clients
    """

    error_code = "rate_limit_exceeded"
    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


# ── Store Error Translation ───────────────────────────────────────────────
# PostgreSQL SQLSTATE codes we remap; anything else becomes DatabaseError
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"
_NOT_NULL_VIOLATION = "23502"


def _sqlstate(exc: IntegrityError) -> Optional[str]:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is None and orig is not None:
        # asyncpg errors are wrapped by SQLAlchemy's adapter
        code = getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    return code


def translate_integrity_error(exc: IntegrityError, resource: str = "resource") -> BookSwapError:
    """
    Map a store constraint violation onto the application taxonomy.

    Matches on the SQLSTATE code when the driver exposes one, otherwise on
    the message text (SQLite reports constraint failures only as text).
    """
    code = _sqlstate(exc)
    text = str(exc.orig or exc).lower()

    if code == _UNIQUE_VIOLATION or "unique constraint" in text or "duplicate key" in text:
        return ConflictError(
            message=f"This {resource} already exists",
            context={"resource": resource},
        )
    if code == _FOREIGN_KEY_VIOLATION or "foreign key constraint" in text:
        return ValidationError(
            message=f"The {resource} references a record that does not exist",
            context={"resource": resource},
        )
    if code == _NOT_NULL_VIOLATION or "not null constraint" in text or "not-null constraint" in text:
        return ValidationError(
            message=f"A required {resource} field is missing",
            context={"resource": resource},
        )
    return DatabaseError(context={"resource": resource, "db_error": str(exc.orig or exc)})
