"""
Fragfolio Backend — Request ID Middleware
===========================================

What:  Assigns a correlation ID to each request and echoes it in X-Request-ID.
Why:   One smart-input keystroke can fan out into a cache lookup, a provider
       call and a cost-tracking write; the ID ties their log lines together.
When:  Runs before logging so the access log line carries the ID.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied IDs longer than this are replaced (log line hygiene)
MAX_CLIENT_ID_LENGTH = 64


def _new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Uses the frontend's X-Request-ID when present so a UI action can be traced
    end to end; otherwise generates a short one.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", "").strip()
        if not rid or len(rid) > MAX_CLIENT_ID_LENGTH:
            rid = _new_request_id()

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
