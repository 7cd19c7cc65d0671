"""
BookSwap Backend - Auth Routes
================================

Sign-in and sign-up belong to the hosted auth provider. This router only
hands out the per-session CSRF token that every mutation must echo back.
"""

from fastapi import APIRouter, Request, Response

from bookswap.schemas.common import CsrfTokenResponse
from bookswap.security import issue_csrf_token

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.get(
    "/csrf",
    response_model=CsrfTokenResponse,
    summary="Get the CSRF token for this session",
)
async def get_csrf_token(request: Request, response: Response) -> CsrfTokenResponse:
    """
    Returns the session's CSRF token, creating it (and the session cookie)
    on first call. Send it back as the X-CSRF-Token header.
    """
    response.headers["Cache-Control"] = "no-store"
    return CsrfTokenResponse(csrf_token=issue_csrf_token(request))
