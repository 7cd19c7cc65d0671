"""
BookSwap Backend - Book Service
=================================

What:  Listing and owner-only CRUD for the book catalogue.
How:   Plain SQLAlchemy queries on the request session; constraint
       violations are translated into the application's error taxonomy.
Who:   Book routes and the dashboard.

Listing modes (GET /api/books):
    default                    the caller's own books
    userId=<id>                that user's books
    includeOwner=true          every user's books, each with its owner summary
    available=true|false       further restricts by availability
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.context import RequestContext
from bookswap.exceptions import ConflictError, ForbiddenError, NotFoundError, translate_integrity_error
from bookswap.models.book import Book
from bookswap.schemas.book import (
    BookCreate,
    BookEnvelope,
    BookListResponse,
    BookResponse,
    BookUpdate,
)
from bookswap.services.lookups import accepted_swap_holding, load_profiles, owner_summary

logger = logging.getLogger(__name__)


class BookService:
    """Business logic for books."""

    async def _get_book(self, db: AsyncSession, book_id: uuid.UUID) -> Book:
        book = (await db.execute(select(Book).where(Book.id == book_id))).scalar_one_or_none()
        if book is None:
            raise NotFoundError(resource="book", resource_id=str(book_id))
        return book

    async def _get_owned_book(self, ctx: RequestContext, book_id: uuid.UUID) -> Book:
        book = await self._get_book(ctx.db, book_id)
        if book.owner_id != ctx.user_id:
            raise ForbiddenError(
                "You can only modify your own books",
                context={"book_id": str(book_id)},
            )
        return book

    async def list_books(
        self,
        ctx: RequestContext,
        user_id: Optional[uuid.UUID] = None,
        include_owner: bool = False,
        available: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BookListResponse:
        query = select(Book)
        if user_id is not None:
            query = query.where(Book.owner_id == user_id)
        elif not include_owner:
            query = query.where(Book.owner_id == ctx.user_id)
        if available is not None:
            query = query.where(Book.is_available.is_(available))
        query = query.order_by(Book.created_at.desc(), Book.id).limit(limit).offset(offset)

        books = (await ctx.db.execute(query)).scalars().all()
        items = [BookResponse.model_validate(b) for b in books]

        if include_owner:
            profiles = await load_profiles(ctx.db, (b.owner_id for b in books))
            for item in items:
                item.owner = owner_summary(profiles.get(item.owner_id))

        return BookListResponse(books=items)

    async def count_books(self, db: AsyncSession, owner_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count()).select_from(Book).where(Book.owner_id == owner_id)
        )
        return result.scalar_one()

    async def get_book(self, ctx: RequestContext, book_id: uuid.UUID) -> BookEnvelope:
        book = await self._get_book(ctx.db, book_id)
        item = BookResponse.model_validate(book)
        profiles = await load_profiles(ctx.db, [book.owner_id])
        item.owner = owner_summary(profiles.get(book.owner_id))
        return BookEnvelope(book=item)

    async def create_book(self, ctx: RequestContext, data: BookCreate) -> BookEnvelope:
        """
        Add a book to the caller's collection.

        Raises:
            ConflictError: The caller already listed this catalogue volume
        """
        if data.google_volume_id:
            existing = await ctx.db.execute(
                select(Book.id).where(
                    Book.owner_id == ctx.user_id,
                    Book.google_volume_id == data.google_volume_id,
                )
            )
            if existing.first() is not None:
                raise ConflictError(
                    "You have already added this book to your collection",
                    context={"google_volume_id": data.google_volume_id},
                )

        values = data.model_dump()
        if values.get("thumbnail_url") is not None:
            values["thumbnail_url"] = str(values["thumbnail_url"])
        book = Book(owner_id=ctx.user_id, **values)
        ctx.db.add(book)
        try:
            await ctx.db.flush()
        except IntegrityError as e:
            # Two concurrent creates of the same volume both pass the check above
            raise translate_integrity_error(e, resource="book")
        await ctx.db.refresh(book)

        logger.info("Book %s created by %s", book.id, ctx.user_id)
        return BookEnvelope(book=BookResponse.model_validate(book))

    async def update_book(
        self, ctx: RequestContext, book_id: uuid.UUID, data: BookUpdate
    ) -> BookEnvelope:
        book = await self._get_owned_book(ctx, book_id)
        changes = data.model_dump(exclude_unset=True)
        if "is_available" in changes and changes["is_available"] != book.is_available:
            if await accepted_swap_holding(ctx.db, [book_id]) is not None:
                raise ConflictError(
                    "This book is reserved by an accepted swap; its availability cannot change",
                    context={"book_id": str(book_id)},
                )
        if changes.get("thumbnail_url") is not None:
            changes["thumbnail_url"] = str(changes["thumbnail_url"])
        for key, value in changes.items():
            setattr(book, key, value)
        try:
            await ctx.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e, resource="book")
        await ctx.db.refresh(book)
        return BookEnvelope(book=BookResponse.model_validate(book))

    async def delete_book(self, ctx: RequestContext, book_id: uuid.UUID) -> None:
        """
        Remove one of the caller's books.

        Raises:
            ConflictError: An accepted swap still holds the book
        """
        book = await self._get_owned_book(ctx, book_id)
        if await accepted_swap_holding(ctx.db, [book_id]) is not None:
            raise ConflictError(
                "This book is part of an accepted swap and cannot be deleted",
                context={"book_id": str(book_id)},
            )
        await ctx.db.delete(book)
        await ctx.db.flush()
        logger.info("Book %s deleted by %s", book_id, ctx.user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
book_service = BookService()
