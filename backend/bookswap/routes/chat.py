"""
BookSwap Backend - Chat Route Handlers
========================================

One endpoint, dispatched on `action`:
    GET  ?action=conversations | history
    POST {"action": "send" | "markAsRead", ...}
"""

import uuid
from typing import Literal, Optional, Union

from fastapi import APIRouter, Body, Depends, Query

from bookswap.context import RequestContext, get_request_context
from bookswap.schemas.chat import (
    ChatHistoryResponse,
    ChatMarkReadResponse,
    ChatPostRequest,
    ChatSendRequest,
    ChatSendResponse,
    ConversationListResponse,
)
from bookswap.security import require_csrf
from bookswap.services.chat_service import chat_service

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.get("", response_model=Union[ConversationListResponse, ChatHistoryResponse])
async def chat_query(
    action: Literal["conversations", "history"] = Query(...),
    conversation_id: Optional[str] = Query(default=None, alias="conversationId", max_length=80),
    other_user_id: Optional[uuid.UUID] = Query(default=None, alias="otherUserId"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: RequestContext = Depends(get_request_context),
):
    if action == "conversations":
        return await chat_service.list_conversations(ctx)
    return await chat_service.history(
        ctx,
        conversation_id=conversation_id,
        other_user_id=other_user_id,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    response_model=Union[ChatSendResponse, ChatMarkReadResponse],
    dependencies=[Depends(require_csrf)],
)
async def chat_command(
    data: ChatPostRequest = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    if isinstance(data, ChatSendRequest):
        return await chat_service.send_message(ctx, data)
    return await chat_service.mark_as_read(ctx, data.conversation_id)
