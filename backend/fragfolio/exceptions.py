"""
Fragfolio Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for the AI smart-input service.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, providers and dependencies; caught by global handlers.

Exception Hierarchy:
    FragfolioError (base)
    ├── ValidationError             → 422 Unprocessable Entity
    ├── AuthenticationError         → 401 Unauthorized
    ├── ForbiddenError              → 403 Forbidden
    ├── NotFoundError               → 404 Not Found
    ├── LLMServiceError             → 503 Service Unavailable
    ├── CircuitBreakerOpenError     → 503 Service Unavailable (circuit open)
    ├── ProviderConfigurationError  → 503 Service Unavailable (no provider)
    ├── DatabaseError               → 500 Internal Server Error
    ├── RateLimitExceededError      → 429 Too Many Requests (per IP)
    └── UsageLimitExceededError     → 429 Too Many Requests (AI cost limits)

Design Decision:
    ValidationError answers 422 so that business-rule rejections (an
    unavailable provider, a missing brand name) share a status with FastAPI's
    schema validation. Clients handle one "fix your input" code.
"""

from typing import Any, Dict, Optional


class FragfolioError(Exception):
    """
    Base exception for all fragfolio application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(FragfolioError):
    """Client input failed a business rule."""

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


class AuthenticationError(FragfolioError):
    """The endpoint needs a user identity and the request carried none."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(FragfolioError):
    """The caller is known but not allowed to use this endpoint."""

    def __init__(
        self,
        message: str = "You are not allowed to access this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(FragfolioError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that into
    NotFoundError so routes stay free of status-code logic.
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


class LLMServiceError(FragfolioError):
    """
    Raised when an AI provider call fails after all retries.

    Services that own a fallback payload catch this and degrade; it only
    reaches the client from endpoints without a fallback (health checks).
    """

    def __init__(
        self,
        message: str = "AI provider is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(FragfolioError):
    """
    Raised when a provider's circuit breaker is in OPEN state.

    State machine:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_timeout)
        → After recovery_timeout → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED, test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI provider is temporarily unavailable due to repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class ProviderConfigurationError(FragfolioError):
    """No AI provider has credentials configured."""

    def __init__(
        self,
        message: str = "No AI providers are configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(FragfolioError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(FragfolioError):
    """A client exceeded a request-count window."""

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


class UsageLimitExceededError(FragfolioError):
    """
    Raised when a user's AI spend or request quota is used up.

    context["limits"] carries the check_all_limits() snapshot so the client
    can show which limit tripped.
    """

    def __init__(
        self,
        message: str = "AI usage limit exceeded",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
