"""
MedCheck Backend - Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for each error scenario.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, auth and middleware; caught by global handlers.

Exception Hierarchy:
    MedCheckError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found (also: row owned by someone else)
    ├── FileStorageError         → 500 Internal Server Error
    ├── LLMServiceError          → 503 Service Unavailable (retry later)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    └── DatabaseError            → 500 Internal Server Error

Rate limiting answers 429 directly from its middleware.
"""

from typing import Any, Dict, Optional


class MedCheckError(Exception):
    """
    Base exception for all MedCheck application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; returned only for client errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MedCheckError):
    """
    Raised when client input fails a business rule.

    Examples: unsupported image type, reminder day outside 0-6 for a weekly
    schedule, malformed "HH:MM" time.

    HTTP: 400 Bad Request. Schema-level validation stays FastAPI's 422.
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


class AuthenticationError(MedCheckError):
    """
    Raised when the bearer token is missing, malformed, expired or
    signed with the wrong secret.

    HTTP: 401 Unauthorized with a `WWW-Authenticate: Bearer` header.
    """

    def __init__(
        self,
        message: str = "Authentication required. Please sign in again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(MedCheckError):
    """
    Raised when a requested resource does not exist for the caller.

    Rows belonging to other users are reported the same way, so an
    identifier never reveals whether someone else's record exists.
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


class FileStorageError(MedCheckError):
    """
    Raised when file system operations fail (disk full, permission denied).

    HTTP: 500. The message is generic; paths stay in the logs.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(MedCheckError):
    """
    Raised when the Gemini service fails after all retries, or returns a
    response that cannot be interpreted.

    HTTP: 503 Service Unavailable, with Retry-After when known.
    """

    def __init__(
        self,
        message: str = "The AI service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(MedCheckError):
    """
    Raised when the circuit breaker is in OPEN state.

    CLOSED (normal) → failures increment counter
    → After threshold failures → OPEN (reject all calls for recovery_time)
    → After recovery_time → HALF-OPEN (allow one test call)
    → Test succeeds → CLOSED; test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(MedCheckError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; query details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

