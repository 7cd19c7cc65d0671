"""
BookSwap Backend - Notification Service
=========================================

What:  Turns swap and chat events into Notification rows, serves the
       notification feed, and runs the daily reminder sweep.
How:   Event notifications are added to the caller's session, so they
       commit or roll back together with the transition that caused them.
       The reminder sweep opens one session per recipient instead, so one
       recipient's failure never undoes another's reminder.
Who:   SwapService and ChatService (events), notification routes (feed and sweep).

Reminder categories:
    DAILY_REMINDER_PENDING_SWAPS   owner of a PENDING swap without counter-offer
    DAILY_REMINDER_COUNTER_OFFERS  requester of a PENDING swap with a counter-offer
    DAILY_REMINDER_ACCEPTED_SWAPS  each party of an ACCEPTED swap who hasn't completed

One reminder per (user, category) carries every affected swap id. A
(user, category) already reminded since UTC midnight is skipped.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.context import RequestContext
from bookswap.database import async_session_factory, utcnow
from bookswap.exceptions import NotFoundError
from bookswap.models.chat import ChatMessage
from bookswap.models.notification import Notification, NotificationType
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    ReminderFailure,
    ReminderRecipient,
    ReminderRunResult,
    ReminderStats,
    UnreadCountResponse,
)

logger = logging.getLogger(__name__)

REMINDER_TYPES = (
    NotificationType.DAILY_REMINDER_PENDING_SWAPS,
    NotificationType.DAILY_REMINDER_COUNTER_OFFERS,
    NotificationType.DAILY_REMINDER_ACCEPTED_SWAPS,
)

# reminder_type values carried in the payload
_REMINDER_KEYS = {
    NotificationType.DAILY_REMINDER_PENDING_SWAPS: "pending_swaps",
    NotificationType.DAILY_REMINDER_COUNTER_OFFERS: "counter_offers",
    NotificationType.DAILY_REMINDER_ACCEPTED_SWAPS: "accepted_swaps",
}

# Key naming the acting user in each swap event payload
_ACTOR_KEYS = {
    NotificationType.SWAP_REQUEST: "requester_id",
    NotificationType.SWAP_ACCEPTED: "accepted_by",
    NotificationType.SWAP_DECLINED: "declined_by",
    NotificationType.SWAP_COUNTER_OFFER: "owner_id",
    NotificationType.SWAP_CANCELLED: "cancelled_by",
    NotificationType.SWAP_COMPLETED: "completed_by",
}


def start_of_utc_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


@dataclass
class ReminderBatch:
    """All swaps one user should be reminded about in one category."""

    user_id: uuid.UUID
    type: NotificationType
    swap_request_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def swap_count(self) -> int:
        return len(self.swap_request_ids)


class NotificationService:
    """Notification dispatch, feed and reminder sweep."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_factory):
        self.session_factory = session_factory

    # ══════════════════════════════════════════════════════════════════════
    # Event notifications
    # ══════════════════════════════════════════════════════════════════════

    def build_swap_notification(
        self,
        swap: SwapRequest,
        notification_type: NotificationType,
        actor_id: uuid.UUID,
        recipient_id: uuid.UUID,
        book_title: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> Notification:
        """Construct (but don't persist) the notification for one swap event."""
        title_ref = f'"{book_title}"' if book_title else "your book"
        titles = {
            NotificationType.SWAP_REQUEST: ("New swap request", f"Someone wants to swap for {title_ref}."),
            NotificationType.SWAP_ACCEPTED: ("Swap accepted", f"Your swap request for {title_ref} was accepted."),
            NotificationType.SWAP_DECLINED: ("Swap declined", f"The swap request for {title_ref} was declined."),
            NotificationType.SWAP_COUNTER_OFFER: (
                "Counter-offer received",
                f"The owner of {title_ref} proposed a different book.",
            ),
            NotificationType.SWAP_CANCELLED: ("Swap cancelled", f"The swap for {title_ref} was cancelled."),
            NotificationType.SWAP_COMPLETED: (
                "Swap marked complete",
                f"The other party marked the swap for {title_ref} as complete.",
            ),
        }
        title, message = titles[notification_type]

        data: Dict[str, Any] = {
            "swap_request_id": str(swap.id),
            "book_id": str(swap.book_id),
            _ACTOR_KEYS[notification_type]: str(actor_id),
        }
        if notification_type == NotificationType.SWAP_COUNTER_OFFER:
            data["counter_offered_book_id"] = str(swap.counter_offered_book_id)
        if notification_type == NotificationType.SWAP_COMPLETED:
            data["rating"] = rating

        return Notification(
            user_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            data=data,
            is_read=False,
        )

    async def notify_swap_event(
        self,
        db: AsyncSession,
        swap: SwapRequest,
        notification_type: NotificationType,
        actor_id: uuid.UUID,
        recipient_id: uuid.UUID,
        book_title: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> Notification:
        """Add the notification to `db`; it commits with the caller's transaction."""
        notification = self.build_swap_notification(
            swap, notification_type, actor_id, recipient_id, book_title=book_title, rating=rating
        )
        db.add(notification)
        await db.flush()
        logger.info(
            "Queued %s notification for user %s (swap %s)",
            notification_type.value,
            recipient_id,
            swap.id,
        )
        return notification

    async def notify_chat_message(self, db: AsyncSession, chat_message: ChatMessage) -> Notification:
        preview = chat_message.message[:100]
        notification = Notification(
            user_id=chat_message.recipient_id,
            type=NotificationType.CHAT_MESSAGE,
            title="New message",
            message=preview,
            data={
                "conversation_id": chat_message.conversation_id,
                "message_id": str(chat_message.id),
                "sender_id": str(chat_message.sender_id),
            },
            is_read=False,
        )
        db.add(notification)
        await db.flush()
        return notification

    # ══════════════════════════════════════════════════════════════════════
    # Feed
    # ══════════════════════════════════════════════════════════════════════

    async def count_unread(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def list_notifications(
        self,
        ctx: RequestContext,
        limit: int = 20,
        offset: int = 0,
        unread_only: bool = False,
    ) -> NotificationListResponse:
        query = select(Notification).where(Notification.user_id == ctx.user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)

        rows = (await ctx.db.execute(query)).scalars().all()
        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in rows],
            unread_count=await self.count_unread(ctx.db, ctx.user_id),
        )

    async def unread_count(self, ctx: RequestContext) -> UnreadCountResponse:
        return UnreadCountResponse(unread_count=await self.count_unread(ctx.db, ctx.user_id))

    async def mark_read(self, ctx: RequestContext, notification_id: uuid.UUID) -> NotificationResponse:
        """Flip one of the caller's notifications to read. Idempotent."""
        notification = (
            await ctx.db.execute(
                select(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == ctx.user_id,
                )
            )
        ).scalar_one_or_none()
        # Someone else's notification is reported as missing
        if notification is None:
            raise NotFoundError(resource="notification", resource_id=str(notification_id))

        notification.is_read = True
        await ctx.db.flush()
        return NotificationResponse.model_validate(notification)

    async def mark_all_read(self, ctx: RequestContext) -> MarkAllReadResponse:
        result = await ctx.db.execute(
            update(Notification)
            .where(Notification.user_id == ctx.user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        return MarkAllReadResponse(updated=result.rowcount or 0)

    # ══════════════════════════════════════════════════════════════════════
    # Daily reminder sweep
    # ══════════════════════════════════════════════════════════════════════

    async def collect_reminders(self, db: AsyncSession) -> List[ReminderBatch]:
        """
        Group every outstanding swap into one batch per (user, category).

        Batches come back ordered by category, then user id, so sweeps
        and statistics are deterministic.
        """
        batches: Dict[Tuple[uuid.UUID, NotificationType], ReminderBatch] = {}

        def add(user_id: uuid.UUID, kind: NotificationType, swap_id: uuid.UUID) -> None:
            batch = batches.setdefault((user_id, kind), ReminderBatch(user_id=user_id, type=kind))
            batch.swap_request_ids.append(swap_id)

        rows = (
            await db.execute(
                select(SwapRequest)
                .where(SwapRequest.status.in_([SwapStatus.PENDING, SwapStatus.ACCEPTED]))
                .order_by(SwapRequest.created_at, SwapRequest.id)
            )
        ).scalars().all()

        for swap in rows:
            if swap.status == SwapStatus.PENDING:
                if swap.counter_offered_book_id is None:
                    add(swap.owner_id, NotificationType.DAILY_REMINDER_PENDING_SWAPS, swap.id)
                else:
                    add(swap.requester_id, NotificationType.DAILY_REMINDER_COUNTER_OFFERS, swap.id)
            else:
                if swap.requester_completed_at is None:
                    add(swap.requester_id, NotificationType.DAILY_REMINDER_ACCEPTED_SWAPS, swap.id)
                if swap.owner_completed_at is None:
                    add(swap.owner_id, NotificationType.DAILY_REMINDER_ACCEPTED_SWAPS, swap.id)

        order = {kind: index for index, kind in enumerate(REMINDER_TYPES)}
        return sorted(batches.values(), key=lambda b: (order[b.type], str(b.user_id)))

    def build_reminder(self, batch: ReminderBatch) -> Notification:
        count = batch.swap_count
        if batch.type == NotificationType.DAILY_REMINDER_PENDING_SWAPS:
            title = "Swap requests are waiting for you"
            message = f"You have {_plural(count, 'pending swap request')} to respond to."
        elif batch.type == NotificationType.DAILY_REMINDER_COUNTER_OFFERS:
            title = "Counter-offers are waiting for you"
            message = f"You have {_plural(count, 'counter-offer')} to review."
        else:
            title = "Finish your swaps"
            message = f"You have {_plural(count, 'accepted swap')} to mark as complete."

        return Notification(
            user_id=batch.user_id,
            type=batch.type,
            title=title,
            message=message,
            data={
                "swap_count": count,
                "swap_request_ids": [str(swap_id) for swap_id in batch.swap_request_ids],
                "reminder_type": _REMINDER_KEYS[batch.type],
            },
            is_read=False,
        )

    async def _already_reminded(
        self, db: AsyncSession, batch: ReminderBatch, since: datetime
    ) -> bool:
        result = await db.execute(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == batch.user_id,
                Notification.type == batch.type,
                Notification.created_at >= since,
            )
        )
        return result.scalar_one() > 0

    async def _deliver_reminder(self, batch: ReminderBatch, since: datetime) -> bool:
        """
        Write one reminder in its own transaction.

        Returns False when the user was already reminded in this category today.
        """
        async with self.session_factory() as session:
            try:
                if await self._already_reminded(session, batch, since):
                    return False
                session.add(self.build_reminder(batch))
                await session.commit()
                return True
            except Exception:
                await session.rollback()
                raise

    async def reminder_stats(self, db: AsyncSession) -> ReminderStats:
        """What a sweep would send right now, without sending anything."""
        batches = await self.collect_reminders(db)
        per_type = defaultdict(int)
        for batch in batches:
            per_type[batch.type] += 1

        return ReminderStats(
            pending_swaps=per_type[NotificationType.DAILY_REMINDER_PENDING_SWAPS],
            counter_offers=per_type[NotificationType.DAILY_REMINDER_COUNTER_OFFERS],
            accepted_swaps=per_type[NotificationType.DAILY_REMINDER_ACCEPTED_SWAPS],
            total_recipients=len(batches),
            recipients=[
                ReminderRecipient(
                    user_id=b.user_id,
                    type=b.type,
                    swap_count=b.swap_count,
                    swap_request_ids=b.swap_request_ids,
                )
                for b in batches
            ],
        )

    async def run_daily_reminders(self, now: Optional[datetime] = None) -> ReminderRunResult:
        """
        Send one reminder per (user, category) with outstanding swaps.

        Each reminder commits on its own. A failing recipient is logged and
        listed in the result; the sweep carries on with the rest.
        """
        now = now or utcnow()
        since = start_of_utc_day(now)

        async with self.session_factory() as session:
            batches = await self.collect_reminders(session)

        sent = skipped = 0
        failures: List[ReminderFailure] = []
        for batch in batches:
            try:
                delivered = await self._deliver_reminder(batch, since)
            except Exception as e:
                logger.error(
                    "Daily reminder %s for user %s failed: %s",
                    batch.type.value,
                    batch.user_id,
                    str(e),
                    exc_info=True,
                )
                failures.append(ReminderFailure(user_id=batch.user_id, type=batch.type, error=str(e)))
                continue
            if delivered:
                sent += 1
            else:
                skipped += 1

        logger.info(
            "Daily reminder sweep: %d sent, %d skipped, %d failed",
            sent,
            skipped,
            len(failures),
        )
        return ReminderRunResult(sent=sent, skipped=skipped, failed=len(failures), failures=failures)


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService()
