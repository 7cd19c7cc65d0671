"""
BookSwap Backend - FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (uvicorn bookswap.main:app) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                         FastAPI App                          │
    │                                                              │
    │  Middleware Chain (outermost first):                         │
    │  RequestID → RateLimit → Logging → GZip → Session → CORS     │
    │                                                              │
    │  Routes:                                                     │
    │  /health  /api/auth  /api/books  /api/swaps  /api/chat       │
    │  /api/notifications  /api/profile  /api/dashboard            │
    │                                                              │
    │  Exception Handlers:                                         │
    │  BookSwapError → its status │ RequestValidationError → 400   │
    │  Exception → 500                                             │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, storage directory
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from bookswap import __version__
from bookswap.config import settings
from bookswap.database import dispose_engine
from bookswap.exceptions import BookSwapError, RateLimitExceededError
from bookswap.middleware.logging import RequestLoggingMiddleware
from bookswap.middleware.rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from bookswap.middleware.request_id import RequestIDMiddleware, request_id_var
from bookswap.routes import auth, books, chat, dashboard, health, notifications, profile, swaps
from bookswap.schemas.common import field_errors_from_pydantic

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Called once during startup, before any other initialization.
    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # These log every operation at DEBUG/INFO
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
    logger.info("BookSwap Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")
        # Keep serving: /health still reports, and misconfigured
        # features reject their own requests

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Avatar storage: %s", storage.resolve())
    logger.info("Swap completion policy: %s", settings.swap_completion_policy)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("BookSwap Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions onto the error envelope {error, message, details, request_id}.

    Client errors (4xx) return the exception's message and context.
    Server errors log the context and return a generic message: stack
    traces, SQL and file paths never reach the response.
    """

    @app.exception_handler(BookSwapError)
    async def handle_bookswap_error(request: Request, exc: BookSwapError):
        rid = request_id_var.get("")
        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        if exc.status_code >= 500:
            logger.error(
                "[%s] %s: %s | Context: %s",
                rid,
                type(exc).__name__,
                exc.message,
                exc.context,
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": "server_error",
                    "message": "An internal error occurred. Please try again later.",
                    "request_id": rid,
                },
            )

        logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.context or None,
                "request_id": rid,
            },
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Schema failures become 400 with one entry per offending field."""
        rid = request_id_var.get("")
        field_errors = field_errors_from_pydantic(exc.errors())
        logger.warning("[%s] Request validation failed: %s", rid, field_errors)
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": {"field_errors": field_errors},
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    general_limiter: Optional[FixedWindowRateLimiter] = None,
    mutation_limiter: Optional[FixedWindowRateLimiter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        general_limiter / mutation_limiter: Replace the configured rate
            limit tiers (tests pass small limits and a fake clock)
    """
    app = FastAPI(
        title="BookSwap API",
        description=(
            "Backend of a social book-swapping platform: book listings, swap "
            "requests with counter-offers and ratings, chat and notifications."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition: the last one added
    # is the outermost.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )

    # Signed cookie holding the CSRF token
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie_name,
        max_age=settings.session_max_age,
        same_site="lax",
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware, general=general_limiter, mutation=mutation_limiter)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(books.router)
    app.include_router(swaps.router)
    app.include_router(notifications.router)
    app.include_router(chat.router)
    app.include_router(profile.router)
    app.include_router(profile.files_router)
    app.include_router(dashboard.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
