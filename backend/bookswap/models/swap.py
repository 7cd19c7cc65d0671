"""
BookSwap Backend - Swap Request SQLAlchemy Model
==================================================

What:  ORM model for the `swap_requests` table.
How:   Rows are created in PENDING and only ever moved forward by
       SwapService through a compare-and-set UPDATE guarded on `status`.
Who:   SwapService, NotificationService (reminder sweep), ProfileService
       (rating aggregates).

Lifecycle:
    PENDING ──accept──▶ ACCEPTED ──complete──▶ COMPLETED
       │                   │
       ├──decline──▶ DECLINED
       └──cancel───▶ CANCELLED ◀──cancel──┘

Rating columns are named after who GAVE the rating:
    requester_rating: the requester's rating of the owner
    owner_rating:     the owner's rating of the requester
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    SmallInteger,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from bookswap.database import Base, UTCDateTime, utcnow


class SwapStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


TERMINAL_STATUSES = frozenset({SwapStatus.DECLINED, SwapStatus.CANCELLED, SwapStatus.COMPLETED})


class SwapRequest(Base):
    """An offer by `requester_id` to swap for `book_id`, owned by `owner_id`."""

    __tablename__ = "swap_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Participants & Books ──────────────────────────────────────────────
    book_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    offered_book_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("books.id", ondelete="SET NULL"),
        nullable=True,
        comment="Book the requester offers in exchange",
    )

    # ── State ─────────────────────────────────────────────────────────────
    status: Mapped[SwapStatus] = mapped_column(
        Enum(SwapStatus, name="swap_status", native_enum=False, length=20),
        nullable=False,
        default=SwapStatus.PENDING,
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Counter-offer ─────────────────────────────────────────────────────
    counter_offered_book_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("books.id", ondelete="SET NULL"),
        nullable=True,
        comment="Alternative book proposed by the owner while PENDING",
    )
    counter_offer_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # ── Completion ────────────────────────────────────────────────────────
    requester_completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    owner_completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Set exactly when status becomes COMPLETED",
    )
    requester_rating: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    owner_rating: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    requester_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint(
            "requester_rating IS NULL OR requester_rating BETWEEN 1 AND 5",
            name="ck_swap_requester_rating_range",
        ),
        CheckConstraint(
            "owner_rating IS NULL OR owner_rating BETWEEN 1 AND 5",
            name="ck_swap_owner_rating_range",
        ),
        CheckConstraint(
            "(status = 'COMPLETED' AND completed_at IS NOT NULL)"
            " OR (status <> 'COMPLETED' AND completed_at IS NULL)",
            name="ck_swap_completed_at_matches_status",
        ),
        CheckConstraint("requester_id <> owner_id", name="ck_swap_not_self"),
        Index("idx_swap_requests_owner_status", "owner_id", "status"),
        Index("idx_swap_requests_requester_status", "requester_id", "status"),
        Index("idx_swap_requests_book_id", "book_id"),
    )

    def party_of(self, user_id: uuid.UUID) -> Optional[str]:
        """Returns 'requester', 'owner' or None for a non-participant."""
        if user_id == self.requester_id:
            return "requester"
        if user_id == self.owner_id:
            return "owner"
        return None

    def counterpart_of(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.owner_id if user_id == self.requester_id else self.requester_id

    def __repr__(self) -> str:
        return f"<SwapRequest(id={self.id}, status='{self.status.value}')>"
