"""
BookSwap Backend - Book Route Handlers
========================================

What:  GET/POST /api/books and GET/PUT/DELETE /api/books/{id}.
How:   Thin handlers: parse the request, call BookService, return the schema.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bookswap.context import RequestContext, get_request_context
from bookswap.schemas.book import BookCreate, BookEnvelope, BookListResponse, BookUpdate
from bookswap.schemas.common import ErrorResponse, SuccessResponse
from bookswap.security import require_csrf
from bookswap.services.book_service import book_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/books", tags=["Books"])

_AUTH_ERRORS = {
    401: {"description": "Not signed in", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
}


@router.get(
    "",
    response_model=BookListResponse,
    responses=_AUTH_ERRORS,
    summary="List books",
)
async def list_books(
    user_id: Optional[uuid.UUID] = Query(default=None, alias="userId"),
    include_owner: bool = Query(
        default=False,
        alias="includeOwner",
        description="List every user's books, each with its owner summary",
    ),
    available: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    ctx: RequestContext = Depends(get_request_context),
) -> BookListResponse:
    return await book_service.list_books(
        ctx,
        user_id=user_id,
        include_owner=include_owner,
        available=available,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    status_code=201,
    response_model=BookEnvelope,
    responses={
        **_AUTH_ERRORS,
        400: {"description": "Invalid book data", "model": ErrorResponse},
        403: {"description": "Missing CSRF token", "model": ErrorResponse},
        409: {"description": "Book already in the caller's collection", "model": ErrorResponse},
    },
    dependencies=[Depends(require_csrf)],
    summary="Add a book to the caller's collection",
)
async def create_book(
    data: BookCreate,
    ctx: RequestContext = Depends(get_request_context),
) -> BookEnvelope:
    return await book_service.create_book(ctx, data)


@router.get(
    "/{book_id}",
    response_model=BookEnvelope,
    responses={**_AUTH_ERRORS, 404: {"description": "Book not found", "model": ErrorResponse}},
    summary="Get one book",
)
async def get_book(
    book_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> BookEnvelope:
    return await book_service.get_book(ctx, book_id)


@router.put(
    "/{book_id}",
    response_model=BookEnvelope,
    responses={
        **_AUTH_ERRORS,
        400: {"description": "Invalid book data", "model": ErrorResponse},
        403: {"description": "Not the owner, or missing CSRF token", "model": ErrorResponse},
        404: {"description": "Book not found", "model": ErrorResponse},
    },
    dependencies=[Depends(require_csrf)],
    summary="Edit one of the caller's books",
)
async def update_book(
    book_id: uuid.UUID,
    data: BookUpdate,
    ctx: RequestContext = Depends(get_request_context),
) -> BookEnvelope:
    return await book_service.update_book(ctx, book_id, data)


@router.delete(
    "/{book_id}",
    response_model=SuccessResponse,
    responses={
        **_AUTH_ERRORS,
        403: {"description": "Not the owner, or missing CSRF token", "model": ErrorResponse},
        404: {"description": "Book not found", "model": ErrorResponse},
        409: {"description": "Book held by an accepted swap", "model": ErrorResponse},
    },
    dependencies=[Depends(require_csrf)],
    summary="Delete one of the caller's books",
)
async def delete_book(
    book_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> SuccessResponse:
    await book_service.delete_book(ctx, book_id)
    return SuccessResponse()
