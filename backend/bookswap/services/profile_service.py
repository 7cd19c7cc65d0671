"""
BookSwap Backend - Profile Service
====================================

What:  Profile reads and edits, rating aggregates, avatar uploads.
Who:   Profile routes and the dashboard.

Ratings:
    A user's received ratings are the ratings their counterparts gave:
    requester_rating on swaps they own, owner_rating on swaps they requested.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.context import RequestContext, ensure_profile
from bookswap.exceptions import ConflictError, NotFoundError, translate_integrity_error
from bookswap.models.profile import Profile
from bookswap.models.swap import SwapStatus
from bookswap.schemas.profile import (
    AvatarUploadResponse,
    ProfileResponse,
    ProfileUpdate,
    RatingSummary,
)
from bookswap.services.lookups import profile_response
from bookswap.services.storage_service import storage_service
from bookswap.services.swap_service import swap_service

logger = logging.getLogger(__name__)


class ProfileService:

    async def get_profile(self, ctx: RequestContext) -> ProfileResponse:
        profile = await ensure_profile(ctx.db, ctx.user_id)
        return profile_response(profile)

    async def find_profile(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[ProfileResponse]:
        profile = (await db.execute(select(Profile).where(Profile.id == user_id))).scalar_one_or_none()
        return profile_response(profile) if profile else None

    async def update_profile(self, ctx: RequestContext, data: ProfileUpdate) -> ProfileResponse:
        """
        Raises:
            ConflictError: The username is taken (case-insensitive)
        """
        profile = await ensure_profile(ctx.db, ctx.user_id)
        changes = data.model_dump(exclude_unset=True)

        username = changes.get("username")
        if username:
            taken = await ctx.db.execute(
                select(Profile.id).where(
                    func.lower(Profile.username) == username.lower(),
                    Profile.id != ctx.user_id,
                )
            )
            if taken.first() is not None:
                raise ConflictError(
                    "This username is already taken",
                    context={"username": username},
                )

        for key, value in changes.items():
            setattr(profile, key, value)
        try:
            await ctx.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e, resource="profile")
        await ctx.db.refresh(profile)
        return profile_response(profile)

    async def rating_summary(self, db: AsyncSession, user_id: uuid.UUID) -> RatingSummary:
        exists = (await db.execute(select(Profile.id).where(Profile.id == user_id))).first()
        if exists is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        swaps = await swap_service.swaps_involving(db, user_id)
        summary = RatingSummary(user_id=user_id, total_swaps=len(swaps))

        ratings = []
        for swap in swaps:
            if swap.status != SwapStatus.COMPLETED:
                continue
            summary.completed_swaps += 1
            received = swap.requester_rating if swap.owner_id == user_id else swap.owner_rating
            if received is not None:
                ratings.append(received)
                summary.rating_breakdown[str(received)] += 1

        summary.total_ratings = len(ratings)
        if ratings:
            summary.average_rating = round(sum(ratings) / len(ratings), 2)
        if swaps:
            summary.completion_rate = round(summary.completed_swaps / len(swaps), 2)
        return summary

    async def upload_avatar(
        self,
        ctx: RequestContext,
        content: bytes,
        content_type: Optional[str],
    ) -> AvatarUploadResponse:
        """Store the avatar object and point the caller's profile at its key."""
        profile = await ensure_profile(ctx.db, ctx.user_id)
        key, public_url = await storage_service.store_avatar(ctx.user_id, content, content_type)
        profile.avatar_url = key
        await ctx.db.flush()
        logger.info("Avatar updated for %s", ctx.user_id)
        return AvatarUploadResponse(publicUrl=public_url)


# ── Singleton Instance ────────────────────────────────────────────────────
profile_service = ProfileService()
