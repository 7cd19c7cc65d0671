"""
BookSwap Backend - Profile SQLAlchemy Model
=============================================

What:  ORM model for the `profiles` table.
How:   One row per auth-provider user; the primary key IS the auth user id
       (the JWT `sub` claim), so no separate mapping table exists.
Who:   Read by books/swaps/dashboard responses, written by the profile routes.

avatar_url holds the storage key ("{user_id}/avatar.png"), never a public URL.
The public URL is resolved at response time from AVATAR_PUBLIC_BASE_URL.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bookswap.database import Base, UTCDateTime, utcnow


class Profile(Base):
    """Public profile of a BookSwap user."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        comment="Auth provider user id",
    )

    # ── Display Fields ────────────────────────────────────────────────────
    username: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        comment="Unique public handle",
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # What: Storage key of the avatar inside the avatar bucket
    avatar_url: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Storage key of the avatar object, e.g. '<user_id>/avatar.png'",
    )

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

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, username='{self.username}')>"
