"""
Batch lookups used to decorate responses with books and profiles.

Models carry no ORM relationships; services fetch related rows here in one
IN query per table instead.
"""

import uuid
from typing import Dict, Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.models.book import Book
from bookswap.models.profile import Profile
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.schemas.book import OwnerSummary
from bookswap.schemas.profile import ProfileResponse
from bookswap.schemas.swap import SwapBookSummary
from bookswap.services.storage_service import storage_service


def _distinct(ids: Iterable[Optional[uuid.UUID]]) -> set:
    return {i for i in ids if i is not None}


async def load_books(db: AsyncSession, ids: Iterable[Optional[uuid.UUID]]) -> Dict[uuid.UUID, Book]:
    wanted = _distinct(ids)
    if not wanted:
        return {}
    rows = (await db.execute(select(Book).where(Book.id.in_(wanted)))).scalars().all()
    return {book.id: book for book in rows}


async def load_profiles(
    db: AsyncSession, ids: Iterable[Optional[uuid.UUID]]
) -> Dict[uuid.UUID, Profile]:
    wanted = _distinct(ids)
    if not wanted:
        return {}
    rows = (await db.execute(select(Profile).where(Profile.id.in_(wanted)))).scalars().all()
    return {profile.id: profile for profile in rows}


async def accepted_swap_holding(
    db: AsyncSession,
    book_ids: Iterable[Optional[uuid.UUID]],
    exclude_swap_id: Optional[uuid.UUID] = None,
) -> Optional[SwapRequest]:
    """
    The ACCEPTED swap that has reserved any of `book_ids`, if one exists.

    A swap reserves the book the requester receives (the counter-offered
    book when there is one, else the requested book) and the offered book.
    """
    wanted = _distinct(book_ids)
    if not wanted:
        return None
    stmt = select(SwapRequest).where(
        SwapRequest.status == SwapStatus.ACCEPTED,
        or_(
            SwapRequest.counter_offered_book_id.in_(wanted),
            and_(SwapRequest.counter_offered_book_id.is_(None), SwapRequest.book_id.in_(wanted)),
            SwapRequest.offered_book_id.in_(wanted),
        ),
    )
    if exclude_swap_id is not None:
        stmt = stmt.where(SwapRequest.id != exclude_swap_id)
    return (await db.execute(stmt.limit(1))).scalars().first()


def owner_summary(profile: Optional[Profile]) -> Optional[OwnerSummary]:
    if profile is None:
        return None
    return OwnerSummary(
        id=profile.id,
        username=profile.username,
        full_name=profile.full_name,
        avatar_url=storage_service.public_url(profile.avatar_url),
    )


def book_summary(book: Optional[Book]) -> Optional[SwapBookSummary]:
    if book is None:
        return None
    return SwapBookSummary(
        id=book.id,
        title=book.title,
        authors=list(book.authors or []),
        thumbnail_url=book.thumbnail_url,
        condition=book.condition.value,
    )


def profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        username=profile.username,
        full_name=profile.full_name,
        bio=profile.bio,
        location=profile.location,
        avatar_url=storage_service.public_url(profile.avatar_url),
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )
