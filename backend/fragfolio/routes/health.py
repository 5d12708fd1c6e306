"""
Fragfolio Backend — Health Check Route
========================================

What:  Service health for Docker health checks and load balancer checks.
How:   SELECT 1 against the database, plus the circuit breaker state of
       every provider instance created so far. No provider is called here;
       GET /api/ai/health does the (slower) live provider checks.

Status levels:
    - healthy:   database reachable, no breaker open (HTTP 200)
    - degraded:  database reachable, a breaker is open or no provider
                 key is configured (HTTP 200; every AI call falls back)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from fragfolio import __version__
from fragfolio.schemas.common import HealthResponse
from fragfolio.services.provider_factory import provider_factory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        from fragfolio.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Provider circuit breakers ─────────────────────────────────────────
    providers = {
        name: provider.circuit_breaker.snapshot()
        for name, provider in provider_factory.instances().items()
    }
    breaker_open = any(snapshot["state"] == "open" for snapshot in providers.values())
    if overall == "healthy" and (breaker_open or not provider_factory.available_providers()):
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        providers=providers,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
