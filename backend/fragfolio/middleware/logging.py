"""
Fragfolio Backend — Request Logging Middleware
================================================

What:  One access log line per HTTP request, with status, duration and the
       acting user.
How:   Measures wall time around call_next and logs to "fragfolio.access".
       Level follows the status code so 5xx responses can be alerted on.

What we log vs what we DON'T log:
    ✅ method, path, status, duration, client IP, request ID, X-User-ID
    ❌ request bodies: the free-text smart-input queries are user content
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from fragfolio.middleware.request_id import request_id_var

logger = logging.getLogger("fragfolio.access")

# Health checks hit these every few seconds
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Typical durations:
        - GET /health: 1-5ms
        - POST /api/ai/complete, cache hit: <10ms
        - POST /api/ai/complete, provider call: 500-3000ms
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        user_id = request.headers.get("X-User-ID", "-")

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] user=%s from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            user_id,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "user_id": user_id,
            },
        )
        return response
