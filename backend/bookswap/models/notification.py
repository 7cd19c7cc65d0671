"""
BookSwap Backend - Notification SQLAlchemy Model
==================================================

What:  ORM model for the `notifications` table.
How:   Written by NotificationService, one row per recipient per event.
       The only mutation ever applied is flipping `is_read`; rows are never
       deleted.

`data` carries a payload whose keys depend on `type`:
    SWAP_*           {swap_request_id, book_id, <actor key>, ...}
    CHAT_MESSAGE     {conversation_id, message_id, sender_id}
    DAILY_REMINDER_* {swap_count, swap_request_ids, reminder_type}
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bookswap.database import Base, JSONPayload, UTCDateTime, utcnow


class NotificationType(str, enum.Enum):
    SWAP_REQUEST = "SWAP_REQUEST"
    SWAP_ACCEPTED = "SWAP_ACCEPTED"
    SWAP_DECLINED = "SWAP_DECLINED"
    SWAP_COUNTER_OFFER = "SWAP_COUNTER_OFFER"
    SWAP_CANCELLED = "SWAP_CANCELLED"
    SWAP_COMPLETED = "SWAP_COMPLETED"
    CHAT_MESSAGE = "CHAT_MESSAGE"
    DAILY_REMINDER_PENDING_SWAPS = "DAILY_REMINDER_PENDING_SWAPS"
    DAILY_REMINDER_COUNTER_OFFERS = "DAILY_REMINDER_COUNTER_OFFERS"
    DAILY_REMINDER_ACCEPTED_SWAPS = "DAILY_REMINDER_ACCEPTED_SWAPS"


class Notification(Base):
    """A message shown in the recipient's notification feed."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        comment="Recipient",
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type", native_enum=False, length=40),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
        # Reminder de-duplication looks up (user, type) since midnight
        Index("idx_notifications_user_type_created", "user_id", "type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type='{self.type.value}', read={self.is_read})>"
