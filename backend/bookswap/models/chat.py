"""
BookSwap Backend - Chat Message SQLAlchemy Model
==================================================

What:  ORM model for the `chat_messages` table (direct messages between users).

conversation_id is derived, not stored elsewhere: the two participant ids,
sorted, joined with "_". Both participants therefore compute the same id
without a conversations table.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bookswap.database import Base, UTCDateTime, utcnow


def conversation_id_for(user_a: uuid.UUID, user_b: uuid.UUID) -> str:
    first, second = sorted([str(user_a), str(user_b)])
    return f"{first}_{second}"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[str] = mapped_column(String(80), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Optional Attachment ───────────────────────────────────────────────
    attachment_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    attachment_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_chat_messages_conversation_created", "conversation_id", "created_at"),
        Index("idx_chat_messages_recipient_read", "recipient_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<ChatMessage(id={self.id}, conversation='{self.conversation_id}')>"
