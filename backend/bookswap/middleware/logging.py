"""
BookSwap Backend - Request Logging Middleware
===============================================

What:  One access-log line per HTTP request: method, path, status, duration.
How:   Times the downstream call and logs at a level chosen from the status
       code (5xx → ERROR, 4xx → WARNING, otherwise INFO).
When:  Inside RequestIDMiddleware, so every line carries the request id.

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, status, duration, IP, request ID
    ❌ Don't log: request bodies, chat messages, Authorization or CSRF headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from bookswap.middleware.rate_limit import client_ip
from bookswap.middleware.request_id import request_id_var

logger = logging.getLogger("bookswap.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs structured information about each HTTP request and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Health checks are polled every few seconds
        if request.url.path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        ip = client_ip(request)
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": ip,
            },
        )

        return response
