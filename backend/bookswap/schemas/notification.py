"""
BookSwap Backend - Notification Schemas
=========================================

What:  Feed items, unread counters and the daily reminder sweep reports.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from bookswap.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int = Field(description="How many notifications flipped to read")
    success: bool = True


# ══════════════════════════════════════════════════════════════════════════
# Daily Reminder Sweep
# ══════════════════════════════════════════════════════════════════════════


class ReminderRecipient(BaseModel):
    """One (user, category) the sweep would notify."""

    user_id: uuid.UUID
    type: NotificationType
    swap_count: int
    swap_request_ids: List[uuid.UUID]


class ReminderFailure(BaseModel):
    user_id: uuid.UUID
    type: NotificationType
    error: str


class ReminderStats(BaseModel):
    """Returned by GET /api/notifications/daily-reminders (nothing is sent)."""

    pending_swaps: int = Field(description="Owners with pending requests to answer")
    counter_offers: int = Field(description="Requesters with counter-offers to answer")
    accepted_swaps: int = Field(description="Participants with accepted swaps to complete")
    total_recipients: int
    recipients: List[ReminderRecipient]


class ReminderRunResult(BaseModel):
    """Returned by POST /api/notifications/daily-reminders."""

    sent: int
    skipped: int = Field(description="Recipients already reminded today")
    failed: int
    failures: List[ReminderFailure] = Field(default_factory=list)
    success: bool = True
