"""
How Sitter Backend — Custom Exception Hierarchy
=================================================

What:  The errors services and dependencies raise, one class per HTTP outcome.
How:   Each carries a user-facing `message` and a `context` dict;
       main.register_exception_handlers turns them into the JSON error body.
Who:   Raised by services, dependencies and the rate limiter.

Exception Hierarchy:
    HowSitterError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized (missing/invalid credential)
    ├── AuthorizationError       → 403 Forbidden (wrong role or not the owner)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (date overlap, state conflicts)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Propagation policy:
    Validation, authorization and conflict errors are returned to the caller
    immediately. Nothing is retried: a booking conflict is terminal for the
    request and must be resubmitted with different dates.
"""

from typing import Any, Dict, Optional


class HowSitterError(Exception):
    """
    Base exception for all How Sitter application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for client errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(HowSitterError):
    """
    Raised when client input fails a business validation rule.

    When:    Missing fields, date ordering, stay bounds, unsupported image types.
    HTTP:    400 Bad Request

    Schema-level problems (wrong JSON types, malformed UUIDs) are still
    reported by FastAPI as 422; this class covers rules only services know.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(HowSitterError):
    """
    Raised when a request carries no usable credential.

    When:    No bearer token, malformed/expired token, or token for a deleted user.
    HTTP:    401 Unauthorized (with WWW-Authenticate: Bearer)
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(HowSitterError):
    """
    Raised when an authenticated user may not perform the action.

    When:    A homeowner tries to book, a sitter tries to confirm, a user
             edits a property they do not own.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(HowSitterError):
    """
    Raised for an unknown property, arrangement, image, sitter or file.

    SQLAlchemy returns None for missing records; services convert that into
    NotFoundError so the global handler can answer 404.
    """

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


class ConflictError(HowSitterError):
    """
    Raised when a request collides with the current state of the data.

    When:
        - Requested dates overlap a pending/confirmed/active arrangement
        - Property is not accepting new arrangements (occupied, pending, ...)
        - Illegal arrangement status transition (e.g. completed → pending)
        - Deleting a property that still has blocking arrangements
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "The request conflicts with the current state of the resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(HowSitterError):
    """
    Raised when an uploaded image cannot be stored or inspected.

    When:    Disk full, permission denied, libmagic failure.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(HowSitterError):
    """
    Raised when database operations fail unexpectedly.

    What:    A query, insert, or update failed (connection lost, deadlock, ...).
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. The session
    dependency rolls the whole transaction back, so a failed multi-step
    write (arrangement + thread message) leaves nothing behind.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(HowSitterError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with Retry-After header)
    """

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
