"""
BookSwap Backend - Chat Schemas
=================================

What:  Request/response shapes for the action-dispatched /api/chat endpoint.

GET  /api/chat?action=conversations
GET  /api/chat?action=history&conversationId=...&limit=&offset=
GET  /api/chat?action=history&otherUserId=...   (same, id derived)
POST /api/chat {"action": "send", "recipient_id": ..., "message": ...}
POST /api/chat {"action": "markAsRead", "conversation_id": ...}
"""

import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, HttpUrl, field_validator

from bookswap.schemas.book import OwnerSummary
from bookswap.schemas.common import CleanText


class ChatSendRequest(BaseModel):
    action: Literal["send"]
    recipient_id: uuid.UUID
    message: CleanText = Field(min_length=1, max_length=2000)
    attachment_url: Optional[HttpUrl] = Field(default=None, description="http(s) only")
    attachment_type: Optional[CleanText] = Field(default=None, max_length=100)
    attachment_size: Optional[int] = Field(default=None, ge=0)

    model_config = {"extra": "forbid"}

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be blank")
        return v


class ChatMarkReadRequest(BaseModel):
    action: Literal["markAsRead"]
    conversation_id: str = Field(
        min_length=3,
        max_length=80,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
    )

    model_config = {"extra": "forbid"}


ChatPostRequest = Annotated[
    Union[ChatSendRequest, ChatMarkReadRequest],
    Field(discriminator="action"),
]


class ChatMessageResponse(BaseModel):
    id: uuid.UUID
    conversation_id: str
    sender_id: uuid.UUID
    recipient_id: uuid.UUID
    message: str
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    attachment_size: Optional[int] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    conversation_id: str
    other_user_id: uuid.UUID
    other_participant: Optional[OwnerSummary] = None
    last_message: ChatMessageResponse
    unread_count: int


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]


class ChatHistoryResponse(BaseModel):
    conversation_id: str
    messages: List[ChatMessageResponse]


class ChatSendResponse(BaseModel):
    message: ChatMessageResponse
    success: bool = True


class ChatMarkReadResponse(BaseModel):
    updated: int
    success: bool = True
