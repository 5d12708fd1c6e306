"""
Fragfolio Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, error mapping
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (uvicorn fragfolio.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌───────────┐   │
    │  │ Rate Limit │→│  Req ID  │→│ Logging │→│ GZip/CORS │   │
    │  └────────────┘ └──────────┘ └─────────┘ └───────────┘   │
    │                                                          │
    │  Routes (/api/ai):                                       │
    │  completion · normalization · note_suggestion ·          │
    │  cost · feedback            + GET /health                │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→422 │ Auth→401 │ Forbidden→403 │ 404         │
    │  RateLimit/Usage→429 │ LLM/Breaker/Config→503 │ DB→500   │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → configuration check (logged, not fatal) → ready
    Shutdown: close provider HTTP clients → dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from fragfolio import __version__
from fragfolio.config import settings
from fragfolio.database import dispose_engine
from fragfolio.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    DatabaseError,
    ForbiddenError,
    FragfolioError,
    LLMServiceError,
    NotFoundError,
    ProviderConfigurationError,
    RateLimitExceededError,
    UsageLimitExceededError,
    ValidationError,
)
from fragfolio.middleware.logging import RequestLoggingMiddleware
from fragfolio.middleware.rate_limit import RateLimitMiddleware
from fragfolio.middleware.request_id import RequestIDMiddleware, request_id_var
from fragfolio.routes import completion, cost, feedback, health, normalization, note_suggestion
from fragfolio.services.provider_factory import provider_factory

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s on stdout
    (Docker captures stdout).
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # These log every request / statement / connection at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Fragfolio AI backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks still answer and AI endpoints fall back
        logger.error("Configuration error: %s", str(e))

    providers = provider_factory.available_providers()
    logger.info("AI providers configured: %s", ", ".join(providers) or "none")
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Fragfolio AI backend shutting down...")
    await provider_factory.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error(status_code: int, error: str, message: str, details: Optional[Dict[str, Any]] = None,
           headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details or None,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map FragfolioError subclasses to HTTP responses.

    Handler hierarchy:
        ValidationError            → 422
        AuthenticationError        → 401
        ForbiddenError             → 403
        NotFoundError              → 404
        RateLimitExceededError     → 429 + Retry-After
        UsageLimitExceededError    → 429
        LLMServiceError            → 503 (+ Retry-After when known)
        CircuitBreakerOpenError    → 503 + Retry-After
        ProviderConfigurationError → 503
        DatabaseError              → 500, generic message
        FragfolioError (base)      → 500
        Exception (fallback)       → 500

    Stack traces and SQL never reach the response body; they are logged.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error(422, "validation_error", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error(401, "unauthenticated", exc.message)

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        logger.warning("[%s] Forbidden: %s %s", request_id_var.get(""), request.method, request.url.path)
        return _error(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(429, "rate_limit_exceeded", exc.message, exc.context,
                      headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(UsageLimitExceededError)
    async def handle_usage_limit(request: Request, exc: UsageLimitExceededError):
        logger.info("[%s] Usage limit: %s", request_id_var.get(""), exc.message)
        return _error(429, "usage_limit_exceeded", exc.message, exc.context)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error(503, "service_unavailable", exc.message, {"recovery_time": exc.recovery_time},
                      headers={"Retry-After": str(exc.recovery_time)})

    @app.exception_handler(LLMServiceError)
    async def handle_llm_error(request: Request, exc: LLMServiceError):
        logger.error("[%s] LLM service error: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error(503, "llm_service_error", exc.message, exc.context, headers=headers)

    @app.exception_handler(ProviderConfigurationError)
    async def handle_provider_configuration(request: Request, exc: ProviderConfigurationError):
        logger.error("[%s] Provider configuration: %s", request_id_var.get(""), exc.message)
        return _error(503, "provider_not_configured", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(FragfolioError)
    async def handle_fragfolio_error(request: Request, exc: FragfolioError):
        logger.error("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        return _error(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Fragfolio AI API",
        description=(
            "AI smart input for a fragrance collection: name completion, name "
            "normalization against the brand/fragrance master data, note "
            "suggestion, and per-user AI cost tracking."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(completion.router)
    app.include_router(normalization.router)
    app.include_router(note_suggestion.router)
    app.include_router(cost.router)
    app.include_router(feedback.router)
    app.include_router(health.router)

    return app


app = create_app()
