"""
BookSwap Backend - Chat Service
=================================

What:  Direct messages between two users.
How:   Messages are grouped by a derived conversation id (both user ids,
       sorted, joined with "_"). Sending also queues a CHAT_MESSAGE
       notification for the recipient in the same transaction.
Who:   The action-dispatched /api/chat route.
"""

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select, update

from bookswap.context import RequestContext
from bookswap.exceptions import ForbiddenError, NotFoundError, ValidationError
from bookswap.models.chat import ChatMessage, conversation_id_for
from bookswap.models.profile import Profile
from bookswap.schemas.chat import (
    ChatHistoryResponse,
    ChatMarkReadResponse,
    ChatMessageResponse,
    ChatSendRequest,
    ChatSendResponse,
    ConversationListResponse,
    ConversationSummary,
)
from bookswap.services.lookups import load_profiles, owner_summary
from bookswap.services.notification_service import notification_service

logger = logging.getLogger(__name__)


def participants_of(conversation_id: str) -> List[str]:
    return conversation_id.split("_")


class ChatService:
    """Business logic for chat."""

    def _require_participant(self, ctx: RequestContext, conversation_id: str) -> None:
        if str(ctx.user_id) not in participants_of(conversation_id):
            raise ForbiddenError(
                "You are not a participant in this conversation",
                context={"conversation_id": conversation_id},
            )

    async def list_conversations(self, ctx: RequestContext) -> ConversationListResponse:
        """Latest message and unread count per conversation, most recent first."""
        messages = (
            await ctx.db.execute(
                select(ChatMessage)
                .where(or_(ChatMessage.sender_id == ctx.user_id, ChatMessage.recipient_id == ctx.user_id))
                .order_by(ChatMessage.created_at.desc(), ChatMessage.id)
            )
        ).scalars().all()

        latest: Dict[str, ChatMessage] = {}
        for message in messages:
            latest.setdefault(message.conversation_id, message)

        unread_rows = await ctx.db.execute(
            select(ChatMessage.conversation_id, func.count())
            .where(ChatMessage.recipient_id == ctx.user_id, ChatMessage.is_read.is_(False))
            .group_by(ChatMessage.conversation_id)
        )
        unread = {conversation_id: count for conversation_id, count in unread_rows.all()}

        def other(message: ChatMessage) -> uuid.UUID:
            return message.recipient_id if message.sender_id == ctx.user_id else message.sender_id

        profiles = await load_profiles(ctx.db, (other(m) for m in latest.values()))
        conversations = [
            ConversationSummary(
                conversation_id=conversation_id,
                other_user_id=other(message),
                other_participant=owner_summary(profiles.get(other(message))),
                last_message=ChatMessageResponse.model_validate(message),
                unread_count=unread.get(conversation_id, 0),
            )
            for conversation_id, message in latest.items()
        ]
        return ConversationListResponse(conversations=conversations)

    async def history(
        self,
        ctx: RequestContext,
        conversation_id: Optional[str] = None,
        other_user_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ChatHistoryResponse:
        """
        A page of a conversation, oldest first.

        `offset` counts back from the newest message, so offset=0 is the
        latest page.
        """
        if conversation_id is None:
            if other_user_id is None:
                raise ValidationError(
                    "conversationId or otherUserId is required",
                    field="conversationId",
                )
            conversation_id = conversation_id_for(ctx.user_id, other_user_id)
        self._require_participant(ctx, conversation_id)

        rows = (
            await ctx.db.execute(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
                .limit(limit)
                .offset(offset)
            )
        ).scalars().all()

        return ChatHistoryResponse(
            conversation_id=conversation_id,
            messages=[ChatMessageResponse.model_validate(m) for m in reversed(rows)],
        )

    async def send_message(self, ctx: RequestContext, data: ChatSendRequest) -> ChatSendResponse:
        if data.recipient_id == ctx.user_id:
            raise ValidationError("You cannot send a message to yourself", field="recipient_id")

        recipient = (
            await ctx.db.execute(select(Profile.id).where(Profile.id == data.recipient_id))
        ).first()
        if recipient is None:
            raise NotFoundError(resource="user", resource_id=str(data.recipient_id))

        message = ChatMessage(
            conversation_id=conversation_id_for(ctx.user_id, data.recipient_id),
            sender_id=ctx.user_id,
            recipient_id=data.recipient_id,
            message=data.message,
            attachment_url=str(data.attachment_url) if data.attachment_url is not None else None,
            attachment_type=data.attachment_type,
            attachment_size=data.attachment_size,
            is_read=False,
        )
        ctx.db.add(message)
        await ctx.db.flush()
        await ctx.db.refresh(message)

        await notification_service.notify_chat_message(ctx.db, message)
        logger.info("Chat message %s sent in %s", message.id, message.conversation_id)
        return ChatSendResponse(message=ChatMessageResponse.model_validate(message))

    async def mark_as_read(self, ctx: RequestContext, conversation_id: str) -> ChatMarkReadResponse:
        """Marks the caller's incoming messages in one conversation as read."""
        self._require_participant(ctx, conversation_id)
        result = await ctx.db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.conversation_id == conversation_id,
                ChatMessage.recipient_id == ctx.user_id,
                ChatMessage.is_read.is_(False),
            )
            .values(is_read=True)
        )
        return ChatMarkReadResponse(updated=result.rowcount or 0)


# ── Singleton Instance ────────────────────────────────────────────────────
chat_service = ChatService()
