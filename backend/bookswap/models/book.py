"""
BookSwap Backend - Book SQLAlchemy Model
==========================================

What:  ORM model for the `books` table, the catalogue users swap from.
Who:   BookService for CRUD; SwapService flips `is_available` and `owner_id`
       as swaps are accepted, cancelled and completed.

Table Design:
    - authors: JSON array of names (1-10 entries, validated at the API edge)
    - google_volume_id: external catalogue id; unique per owner so the same
      user can't list one edition twice, but two users can own it
    - is_available: false while a book is held by an accepted swap
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from bookswap.database import Base, JSONPayload, UTCDateTime, utcnow


class BookCondition(str, enum.Enum):
    """Physical condition grades, best to worst."""

    AS_NEW = "AS_NEW"
    FINE = "FINE"
    VERY_GOOD = "VERY_GOOD"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class Book(Base):
    """A book listed by its owner."""

    __tablename__ = "books"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        comment="Current owner; changes hands when a swap completes",
    )

    # ── Bibliographic Fields ──────────────────────────────────────────────
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    authors: Mapped[List[str]] = mapped_column(JSONPayload, nullable=False, default=list)
    isbn: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    google_volume_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="External catalogue volume id",
    )

    condition: Mapped[BookCondition] = mapped_column(
        Enum(BookCondition, name="book_condition", native_enum=False, length=20),
        nullable=False,
        default=BookCondition.GOOD,
    )

    # ── Availability ──────────────────────────────────────────────────────
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "google_volume_id", name="uq_books_owner_volume"),
        Index("idx_books_owner_id", "owner_id"),
        Index("idx_books_available_created", "is_available", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', available={self.is_available})>"
