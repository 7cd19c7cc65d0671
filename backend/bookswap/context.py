"""
BookSwap Backend - Per-Request Context
========================================

What:  The authenticated caller, their database session and the request id,
       bundled into one object that routes pass to services explicitly.
How:   `get_request_context` is a FastAPI dependency: it verifies the bearer
       JWT, makes sure the caller has a profile row, and builds the context.
       Nothing about the caller is stored in module-level state.
Who:   Every authenticated route.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.database import get_db_session
from bookswap.exceptions import UnauthorizedError
from bookswap.middleware.request_id import request_id_var
from bookswap.models.profile import Profile
from bookswap.security import bearer_token, decode_session_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, and the transaction their request runs in."""

    user_id: uuid.UUID
    db: AsyncSession
    email: Optional[str] = None
    request_id: str = ""


async def ensure_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile:
    """
    Fetch the caller's profile, creating an empty one on first sight.

    The auth provider owns sign-up; the first authenticated request is
    where a new user becomes visible to this service.
    """
    profile = (
        await db.execute(select(Profile).where(Profile.id == user_id))
    ).scalar_one_or_none()
    if profile is None:
        profile = Profile(id=user_id)
        db.add(profile)
        await db.flush()
        logger.info("Created profile for new user %s", user_id)
    return profile


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> RequestContext:
    """
    FastAPI dependency producing the RequestContext.

    Raises:
        UnauthorizedError when the Authorization header is missing or invalid
    """
    token = bearer_token(request)
    if token is None:
        raise UnauthorizedError()

    claims = decode_session_token(token)
    user_id = uuid.UUID(claims["sub"])
    await ensure_profile(db, user_id)

    return RequestContext(
        user_id=user_id,
        db=db,
        email=claims.get("email"),
        request_id=request_id_var.get(""),
    )
