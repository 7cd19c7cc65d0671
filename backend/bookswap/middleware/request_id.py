"""
BookSwap Backend - Request ID Middleware
==========================================

What:  Assigns a correlation id to each request and echoes it in X-Request-ID.
How:   Reuses the client's X-Request-ID when sent, otherwise generates a
       short UUID. The id is stored in a ContextVar for loggers and error
       handlers, and on request.state for route handlers.
When:  Outermost middleware, so even rate-limited responses carry the id.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request for tracing."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # 8 hex chars are enough to correlate log lines
        rid = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
