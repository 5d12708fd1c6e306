"""
Fragfolio Backend — Rate Limiting
===================================

What:  Sliding-window request counters: a per-IP middleware guarding the
       whole API, and the same limiter reused per user for the hourly
       normalization caps.
How:   Each key keeps a list of request timestamps; entries older than the
       window are dropped on every hit.

Algorithm: Sliding Window Log
    1. Drop timestamps older than now - window
    2. If remaining count >= limit, reject with retry_after
    3. Otherwise record now and allow

    In-memory and per-process. Multi-worker deployments get one window per
    worker.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fragfolio.config import settings

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Counts hits per key inside a moving time window."""

    # Sweep inactive keys after this many recorded hits
    CLEANUP_EVERY = 1000

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._since_cleanup = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Record one hit for key.

        Returns:
            None when allowed, otherwise seconds until the oldest hit leaves
            the window.
        """
        now = time.time() if now is None else now
        window_start = now - self.window

        hits = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = hits

        if len(hits) >= self.limit:
            return int(hits[0] + self.window - now) + 1

        hits.append(now)
        self._since_cleanup += 1
        if self._since_cleanup >= self.CLEANUP_EVERY:
            self._cleanup(window_start)
        return None

    def reset(self) -> None:
        self._hits.clear()
        self._since_cleanup = 0

    def _cleanup(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._hits.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in inactive:
            del self._hits[key]
        self._since_cleanup = 0
        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit keys", len(inactive))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP limit over the whole API.

    Excluded paths: health checks and API docs.
    Response on limit: 429 with a Retry-After header.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = SlidingWindowLimiter(
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        retry_after = self.limiter.hit(client_ip)

        if retry_after is not None:
            logger.warning(
                "Rate limit exceeded for IP %s (%d requests in %ds window)",
                client_ip,
                self.limiter.limit,
                self.limiter.window,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
