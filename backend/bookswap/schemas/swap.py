"""
BookSwap Backend - Swap Request Schemas
=========================================

What:  The API contract for creating, transitioning and completing swaps.
How:   Bodies are validated here; SwapService only ever receives
       well-formed input (ids parsed, lengths checked, ratings in 1-5).
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from bookswap.models.swap import SwapStatus
from bookswap.schemas.book import OwnerSummary
from bookswap.schemas.common import CleanText


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class SwapCreate(BaseModel):
    """Body of POST /api/swaps."""

    book_id: uuid.UUID = Field(description="Book the caller wants")
    message: Optional[CleanText] = Field(default=None, max_length=500)
    offered_book_id: Optional[uuid.UUID] = Field(
        default=None,
        description="One of the caller's own available books, offered in exchange",
    )

    model_config = {"extra": "forbid"}


class SwapStatusUpdate(BaseModel):
    """Body of PUT /api/swaps/{id}."""

    status: Literal["ACCEPTED", "DECLINED", "CANCELLED"]

    model_config = {"extra": "forbid"}


class SwapComplete(BaseModel):
    """
    Body of PATCH /api/swaps/{id}: the caller marks the swap complete and
    rates the other party.
    """

    # strict: 4.0 or "4" are rejected rather than coerced
    rating: int = Field(ge=1, le=5, strict=True)
    feedback: Optional[CleanText] = Field(default=None, max_length=1000)

    model_config = {"extra": "forbid"}


class CounterOfferCreate(BaseModel):
    """Body of POST /api/swaps/{id}/counter-offer."""

    counter_offered_book_id: uuid.UUID
    counter_offer_message: Optional[CleanText] = Field(default=None, max_length=500)

    model_config = {"extra": "forbid"}


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class SwapBookSummary(BaseModel):
    id: uuid.UUID
    title: str
    authors: List[str]
    thumbnail_url: Optional[str] = None
    condition: str

    model_config = {"from_attributes": True}


class SwapResponse(BaseModel):
    """A swap request as seen by one of its two participants."""

    id: uuid.UUID
    book_id: uuid.UUID
    requester_id: uuid.UUID
    owner_id: uuid.UUID
    offered_book_id: Optional[uuid.UUID] = None
    status: SwapStatus
    message: Optional[str] = None
    counter_offered_book_id: Optional[uuid.UUID] = None
    counter_offer_message: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    requester_completed_at: Optional[datetime] = None
    owner_completed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    requester_rating: Optional[int] = None
    owner_rating: Optional[int] = None
    requester_feedback: Optional[str] = None
    owner_feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Filled by SwapService when listing
    book: Optional[SwapBookSummary] = None
    offered_book: Optional[SwapBookSummary] = None
    counter_offered_book: Optional[SwapBookSummary] = None
    requester: Optional[OwnerSummary] = None
    owner: Optional[OwnerSummary] = None

    model_config = {"from_attributes": True}


class SwapListResponse(BaseModel):
    incoming: List[SwapResponse] = Field(description="Requests for the caller's books")
    outgoing: List[SwapResponse] = Field(description="Requests the caller has made")


class SwapEnvelope(BaseModel):
    swap: SwapResponse
    success: bool = True
