"""
BookSwap Backend - Session Tokens, CSRF & Scheduler Auth
==========================================================

What:  The three token checks guarding the API:
       1. Session JWTs issued by the hosted auth provider (Authorization: Bearer)
       2. Per-session CSRF tokens on every state-changing request
       3. The shared bearer token the external scheduler uses for reminders
How:   JWTs are verified with PyJWT. CSRF tokens live in the signed session
       cookie (Starlette SessionMiddleware). Every secret comparison goes
       through secrets.compare_digest so its duration doesn't depend on
       where two strings first differ.
Who:   context.get_request_context, the rate limiter, and the routes' dependencies.
"""

import logging
import secrets
import uuid
from typing import Any, Dict, Optional

import jwt
from starlette.requests import Request

from bookswap.config import settings
from bookswap.exceptions import CsrfError, UnauthorizedError

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded → 64 characters
CSRF_TOKEN_BYTES = 32
CSRF_SESSION_KEY = "csrf_token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


# ══════════════════════════════════════════════════════════════════════════
# Constant-time comparison
# ══════════════════════════════════════════════════════════════════════════

def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """
    Compare two secrets in constant time.

    Missing values never match. Strings are compared as UTF-8 bytes so
    non-ASCII input can't raise from compare_digest.
    """
    if not expected or not provided:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def bearer_token(request: Request) -> Optional[str]:
    """Extracts the token from `Authorization: Bearer <token>`, if present."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ══════════════════════════════════════════════════════════════════════════
# Session JWTs
# ══════════════════════════════════════════════════════════════════════════

def decode_session_token(token: str) -> Dict[str, Any]:
    """
    Verify a session JWT and return its claims.

    Checks signature, expiry and audience. The `sub` claim must be a UUID;
    it becomes the caller's profile id.

    Raises:
        UnauthorizedError for any invalid, expired or malformed token
    """
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; rejecting session token")
        raise UnauthorizedError("Authentication is not configured")
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session has expired. Please sign in again.")
    except jwt.PyJWTError as e:
        logger.info("Rejected session token: %s", str(e))
        raise UnauthorizedError("Invalid session token")

    try:
        claims["sub"] = str(uuid.UUID(str(claims["sub"])))
    except ValueError:
        raise UnauthorizedError("Invalid session token")
    return claims


def peek_user_id(request: Request) -> Optional[str]:
    """
    Best-effort caller id for rate limiting.

    Returns None instead of raising; authentication failures are reported
    by the route dependency, not by the middleware.
    """
    token = bearer_token(request)
    if token is None or not settings.jwt_secret:
        return None
    try:
        return decode_session_token(token)["sub"]
    except UnauthorizedError:
        return None


# ══════════════════════════════════════════════════════════════════════════
# CSRF
# ══════════════════════════════════════════════════════════════════════════

def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def issue_csrf_token(request: Request) -> str:
    """Return the session's CSRF token, creating one on first use."""
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = generate_csrf_token()
        request.session[CSRF_SESSION_KEY] = token
    return token


async def require_csrf(request: Request) -> None:
    """
    FastAPI dependency enforcing the CSRF token on state-changing requests.

    The token may arrive as the X-CSRF-Token header or, for HTML form and
    multipart posts, as the `csrf_token` form field. GET, HEAD and OPTIONS
    pass through untouched.

    Raises:
        CsrfError when the token is missing or doesn't match the session's
    """
    if request.method in SAFE_METHODS:
        return

    expected = request.session.get(CSRF_SESSION_KEY)
    provided = request.headers.get(settings.csrf_header_name)

    if provided is None:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
            form = await request.form()
            value = form.get(settings.csrf_form_field)
            provided = value if isinstance(value, str) else None

    if not tokens_match(expected, provided):
        logger.warning(
            "CSRF check failed for %s %s (session token present: %s)",
            request.method,
            request.url.path,
            bool(expected),
        )
        raise CsrfError()


# ══════════════════════════════════════════════════════════════════════════
# Scheduler token
# ══════════════════════════════════════════════════════════════════════════

async def require_scheduler_token(request: Request) -> None:
    """
    FastAPI dependency for the daily reminder trigger.

    The scheduler authenticates with `Authorization: Bearer <DAILY_REMINDER_TOKEN>`
    instead of a user session.
    """
    expected = settings.daily_reminder_token
    if not expected:
        logger.error("DAILY_REMINDER_TOKEN is not configured; rejecting reminder trigger")
        raise UnauthorizedError("Reminder trigger is not configured")
    if not tokens_match(expected, bearer_token(request)):
        raise UnauthorizedError("Invalid reminder token")
