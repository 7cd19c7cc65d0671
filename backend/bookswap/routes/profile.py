"""
BookSwap Backend - Profile Route Handlers
===========================================

Route Inventory:
    GET  /api/profile                      the caller's profile
    PUT  /api/profile                      edit it
    GET  /api/profile/{user_id}/ratings    ratings a user has received
    POST /api/profile/avatar               multipart `file` → {publicUrl}
    GET  /storage/avatars/{key}            serves stored avatars
"""

import logging
import mimetypes
import uuid

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from bookswap.context import RequestContext, get_request_context
from bookswap.schemas.common import ErrorResponse
from bookswap.schemas.profile import (
    AvatarUploadResponse,
    ProfileResponse,
    ProfileUpdate,
    RatingSummary,
)
from bookswap.security import require_csrf
from bookswap.services.profile_service import profile_service
from bookswap.services.storage_service import storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["Profile"])
files_router = APIRouter(tags=["Profile"])


@router.get("", response_model=ProfileResponse)
async def get_profile(ctx: RequestContext = Depends(get_request_context)) -> ProfileResponse:
    return await profile_service.get_profile(ctx)


@router.put(
    "",
    response_model=ProfileResponse,
    responses={409: {"description": "Username taken", "model": ErrorResponse}},
    dependencies=[Depends(require_csrf)],
)
async def update_profile(
    data: ProfileUpdate,
    ctx: RequestContext = Depends(get_request_context),
) -> ProfileResponse:
    return await profile_service.update_profile(ctx, data)


@router.get(
    "/{user_id}/ratings",
    response_model=RatingSummary,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
)
async def get_ratings(
    user_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> RatingSummary:
    return await profile_service.rating_summary(ctx.db, user_id)


@router.post(
    "/avatar",
    response_model=AvatarUploadResponse,
    responses={
        400: {"description": "Wrong file type or too large", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    dependencies=[Depends(require_csrf)],
    summary="Upload a profile picture",
)
async def upload_avatar(
    file: UploadFile = File(..., description="PNG, JPEG, WebP or GIF, max 10MB"),
    ctx: RequestContext = Depends(get_request_context),
) -> AvatarUploadResponse:
    content = await file.read()
    logger.info(
        "Received avatar upload: filename=%s, size=%d bytes",
        file.filename or "unknown",
        len(content),
    )
    try:
        return await profile_service.upload_avatar(ctx, content, file.content_type)
    finally:
        await file.close()


@files_router.get(
    "/storage/avatars/{key:path}",
    responses={404: {"description": "File not found", "model": ErrorResponse}},
    summary="Serve a stored avatar",
)
async def serve_avatar(key: str) -> FileResponse:
    path = storage_service.open_path(key)
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(
        path=str(path),
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=300"},
    )
