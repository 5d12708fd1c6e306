"""Shared response envelopes and field types."""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

ProviderName = Literal["openai", "anthropic", "gemini"]
Language = Literal["ja", "en"]

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class SuccessResponse(BaseModel):
    """{"success": true, "data": ...} — every 2xx body from /api/ai."""
    success: bool = True
    data: Any = None
    message: Optional[str] = None


def ok(data: Any, message: Optional[str] = None) -> SuccessResponse:
    return SuccessResponse(data=data, message=message)


class ErrorResponse(BaseModel):
    """
    Body of every error raised as a FragfolioError.

    Example:
        {
            "error": "usage_limit_exceeded",
            "message": "Daily AI usage limit exceeded",
            "details": {"limits": {...}},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Service-level health.

    status:
        healthy   → database reachable, no provider breaker open
        degraded  → database reachable, some breaker open or nothing configured
        unhealthy → database unreachable
    """
    status: str = Field(description="healthy, degraded, or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    providers: Dict[str, Any] = Field(default_factory=dict, description="Circuit breaker state per provider")
    uptime_seconds: float
