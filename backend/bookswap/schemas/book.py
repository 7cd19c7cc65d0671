"""
BookSwap Backend - Book Request/Response Schemas
==================================================

What:  The API contract for listing, creating and editing books.
How:   Request bodies are validated here, before BookService sees them.
       A body that fails validation never reaches the database.

Validation rules:
    title             1-500 characters
    authors           1-10 non-empty names
    isbn              ISBN-10 / ISBN-13: 10 or 13 digits once spaces and
                      hyphens are removed (ISBN-10 may end in X)
    condition         AS_NEW | FINE | VERY_GOOD | GOOD | FAIR | POOR
    genre             up to 100 characters
    description       up to 2000 characters
    free text         control characters (NUL etc.) are removed first
    thumbnail_url     absolute http(s) URL
"""

import re
import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator

from bookswap.models.book import BookCondition
from bookswap.schemas.common import CleanText

ISBN_SEPARATORS = re.compile(r"[\s-]")
ISBN_DIGITS = re.compile(r"[0-9]{9}[0-9X]|[0-9]{13}")

AuthorName = Annotated[CleanText, Field(min_length=1, max_length=200)]


def _strip_authors(value: List[str]) -> List[str]:
    stripped = [name.strip() for name in value]
    if any(not name for name in stripped):
        raise ValueError("Author names cannot be blank")
    return stripped


def _check_isbn(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not ISBN_DIGITS.fullmatch(ISBN_SEPARATORS.sub("", value).upper()):
        raise ValueError("ISBN must have 10 or 13 digits; only spaces and hyphens may separate them")
    return value.strip()


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class BookCreate(BaseModel):
    """Body of POST /api/books."""

    title: CleanText = Field(min_length=1, max_length=500)
    authors: List[AuthorName] = Field(min_length=1, max_length=10)
    isbn: Optional[str] = Field(default=None, max_length=20)
    condition: BookCondition = Field(default=BookCondition.GOOD)
    genre: Optional[CleanText] = Field(default=None, max_length=100)
    description: Optional[CleanText] = Field(default=None, max_length=2000)
    thumbnail_url: Optional[HttpUrl] = None
    google_volume_id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_available: bool = True

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be blank")
        return v.strip()

    @field_validator("authors")
    @classmethod
    def validate_authors(cls, v: List[str]) -> List[str]:
        return _strip_authors(v)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        return _check_isbn(v)


class BookUpdate(BaseModel):
    """Body of PUT /api/books/{id}; every field optional, at least one required."""

    title: Optional[CleanText] = Field(default=None, min_length=1, max_length=500)
    authors: Optional[List[AuthorName]] = Field(default=None, min_length=1, max_length=10)
    isbn: Optional[str] = Field(default=None, max_length=20)
    condition: Optional[BookCondition] = None
    genre: Optional[CleanText] = Field(default=None, max_length=100)
    description: Optional[CleanText] = Field(default=None, max_length=2000)
    thumbnail_url: Optional[HttpUrl] = None
    is_available: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("authors")
    @classmethod
    def validate_authors(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _strip_authors(v) if v is not None else v

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        return _check_isbn(v)

    @model_validator(mode="after")
    def require_a_change(self) -> "BookUpdate":
        if not self.model_fields_set:
            raise ValueError("Provide at least one field to update")
        return self


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class OwnerSummary(BaseModel):
    id: uuid.UUID
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, description="Public avatar URL")


class BookResponse(BaseModel):
    """Full representation of a book; `owner` is set only when requested."""

    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    authors: List[str]
    isbn: Optional[str] = None
    condition: BookCondition
    genre: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    google_volume_id: Optional[str] = None
    is_available: bool
    created_at: datetime
    updated_at: datetime
    owner: Optional[OwnerSummary] = None

    model_config = {"from_attributes": True}


class BookListResponse(BaseModel):
    books: List[BookResponse]
    success: bool = True


class BookEnvelope(BaseModel):
    book: BookResponse
    success: bool = True
