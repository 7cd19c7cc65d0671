"""
BookSwap Backend - Profile, Rating & Dashboard Schemas
========================================================
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from bookswap.schemas.book import BookResponse
from bookswap.schemas.common import CleanText
from bookswap.schemas.notification import NotificationResponse
from bookswap.schemas.swap import SwapResponse


class ProfileResponse(BaseModel):
    """
    Public view of a profile.

    avatar_url here is the resolved public URL, not the storage key kept in
    the database.
    """
    id: uuid.UUID
    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    full_name: Optional[CleanText] = Field(default=None, max_length=100)
    bio: Optional[CleanText] = Field(default=None, max_length=500)
    location: Optional[CleanText] = Field(default=None, max_length=100)

    model_config = {"extra": "forbid"}

    @field_validator("full_name", "location")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class RatingSummary(BaseModel):
    """
    Ratings a user has RECEIVED across completed swaps.

    rating_breakdown maps each star value ("1".."5") to how many times it
    was given, so the UI can draw the histogram without a second query.
    """
    user_id: uuid.UUID
    average_rating: Optional[float] = Field(default=None, description="Null until rated once")
    total_ratings: int = 0
    rating_breakdown: Dict[str, int] = Field(
        default_factory=lambda: {str(star): 0 for star in range(1, 6)}
    )
    completed_swaps: int = 0
    total_swaps: int = 0
    completion_rate: float = Field(default=0.0, description="Completed / (all swaps involving the user)")


class AvatarUploadResponse(BaseModel):
    publicUrl: str
    success: bool = True


class DashboardResponse(BaseModel):
    """
    Everything the dashboard page needs in one round trip.

    degraded lists the sections that timed out or failed and were
    replaced by their empty default.
    """
    profile: Optional[ProfileResponse] = None
    book_count: int = 0
    recent_books: List[BookResponse] = Field(default_factory=list)
    incoming_swaps: List[SwapResponse] = Field(default_factory=list)
    outgoing_swaps: List[SwapResponse] = Field(default_factory=list)
    unread_notifications: int = 0
    recent_notifications: List[NotificationResponse] = Field(default_factory=list)
    ratings: Optional[RatingSummary] = None
    degraded: List[str] = Field(default_factory=list)
