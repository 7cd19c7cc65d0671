"""
BookSwap Backend - Rate Limiting Middleware
=============================================

What:  Fixed-window rate limiter with a read tier and a mutation tier.
How:   Each (tier, caller) pair owns a window start and a counter. The
       counter resets once the window has elapsed. Check-and-increment runs
       under a lock, so concurrent requests can't both take the last slot.
Who:   Applied to every request via Starlette middleware.
When:  Right after RequestIDMiddleware, before any route work.

Tiers:
    general   GET / HEAD / OPTIONS              (default 100 per 15 min)
    mutation  POST / PUT / PATCH / DELETE       (default 50 per 15 min)

Caller identity:
    user:<uuid>  when the request carries a valid session JWT
    ip:<addr>    otherwise (X-Forwarded-For, X-Real-IP, then the socket peer)

Every response, allowed or rejected, carries:
    X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset (unix seconds)

Production Upgrade Path:
    Counters are per-process. With several workers each keeps its own
    windows; move the counters to Redis (INCR + EXPIRE) to share them.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from bookswap.config import settings
from bookswap.exceptions import RateLimitExceededError
from bookswap.middleware.request_id import request_id_var
from bookswap.security import SAFE_METHODS, peek_user_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }


class FixedWindowRateLimiter:
    """
    In-memory fixed-window counter.

    Args:
        limit: Requests allowed per window
        window_seconds: Window length
        clock: Time source; tests pass a fake to step across windows
    """

    # Expired windows are swept every this many hits
    CLEANUP_EVERY = 1000

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key → (window_start, count)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._hits = 0

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and decide whether it may proceed."""
        with self._lock:
            now = self._clock()
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self.window_seconds:
                start, count = now, 0

            if count >= self.limit:
                allowed = False
            else:
                count += 1
                allowed = True
            self._windows[key] = (start, count)

            self._hits += 1
            if self._hits % self.CLEANUP_EVERY == 0:
                self._cleanup(now)

            return RateLimitDecision(
                allowed=allowed,
                limit=self.limit,
                remaining=max(0, self.limit - count),
                reset_at=start + self.window_seconds,
            )

    def now(self) -> float:
        return self._clock()

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _cleanup(self, now: float) -> None:
        expired = [
            key for key, (start, _) in self._windows.items()
            if now - start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Cleaned up %d expired rate limit windows", len(expired))


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the general or mutation tier to each request.

    Excluded paths:
        - /health: Health checks should never be rate-limited
        - /docs, /openapi.json, /redoc: API documentation stays reachable
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        general: Optional[FixedWindowRateLimiter] = None,
        mutation: Optional[FixedWindowRateLimiter] = None,
    ):
        super().__init__(app)
        self.general = general or FixedWindowRateLimiter(
            settings.rate_limit_general_requests,
            settings.rate_limit_general_window,
        )
        self.mutation = mutation or FixedWindowRateLimiter(
            settings.rate_limit_mutation_requests,
            settings.rate_limit_mutation_window,
        )

    def _limiter_for(self, method: str) -> Tuple[str, FixedWindowRateLimiter]:
        if method in SAFE_METHODS:
            return "general", self.general
        return "mutation", self.mutation

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        user_id = peek_user_id(request)
        caller = f"user:{user_id}" if user_id else f"ip:{client_ip(request)}"
        tier, limiter = self._limiter_for(request.method)
        decision = limiter.hit(f"{tier}:{caller}")

        if not decision.allowed:
            retry_after = decision.retry_after(limiter.now())
            logger.warning(
                "Rate limit exceeded for %s on %s tier (%d per %ss)",
                caller,
                tier,
                limiter.limit,
                limiter.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=retry_after, context={"tier": tier})
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": exc.error_code,
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after), **decision.headers()},
            )

        response = await call_next(request)
        for name, value in decision.headers().items():
            response.headers[name] = value
        return response
