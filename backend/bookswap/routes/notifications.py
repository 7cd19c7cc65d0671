"""
BookSwap Backend - Notification Route Handlers
================================================

Route Inventory:
    GET   /api/notifications                    feed (limit, offset, unreadOnly)
    GET   /api/notifications/unread-count
    PATCH /api/notifications/{id}               mark one read
    POST  /api/notifications/mark-all-read
    GET   /api/notifications/daily-reminders    who would be reminded (scheduler token)
    POST  /api/notifications/daily-reminders    run the sweep (scheduler token)

The daily-reminder routes authenticate with the scheduler's bearer token
instead of a user session, so they carry no CSRF check.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.context import RequestContext, get_request_context
from bookswap.database import get_db_session
from bookswap.schemas.common import ErrorResponse
from bookswap.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    ReminderRunResult,
    ReminderStats,
    UnreadCountResponse,
)
from bookswap.security import require_csrf, require_scheduler_token
from bookswap.services.notification_service import notification_service

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse, summary="List the caller's notifications")
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    ctx: RequestContext = Depends(get_request_context),
) -> NotificationListResponse:
    return await notification_service.list_notifications(
        ctx, limit=limit, offset=offset, unread_only=unread_only
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(ctx: RequestContext = Depends(get_request_context)) -> UnreadCountResponse:
    return await notification_service.unread_count(ctx)


@router.post(
    "/mark-all-read",
    response_model=MarkAllReadResponse,
    dependencies=[Depends(require_csrf)],
)
async def mark_all_read(ctx: RequestContext = Depends(get_request_context)) -> MarkAllReadResponse:
    return await notification_service.mark_all_read(ctx)


@router.get(
    "/daily-reminders",
    response_model=ReminderStats,
    responses={401: {"description": "Invalid scheduler token", "model": ErrorResponse}},
    dependencies=[Depends(require_scheduler_token)],
    summary="Preview the daily reminder sweep",
)
async def reminder_stats(db: AsyncSession = Depends(get_db_session)) -> ReminderStats:
    return await notification_service.reminder_stats(db)


@router.post(
    "/daily-reminders",
    response_model=ReminderRunResult,
    responses={401: {"description": "Invalid scheduler token", "model": ErrorResponse}},
    dependencies=[Depends(require_scheduler_token)],
    summary="Run the daily reminder sweep",
)
async def run_daily_reminders() -> ReminderRunResult:
    """
    Sends one reminder per (user, category) with outstanding swaps.

    Per-recipient failures are reported in the body; the call itself
    still succeeds.
    """
    return await notification_service.run_daily_reminders()


@router.patch(
    "/{notification_id}",
    response_model=NotificationResponse,
    responses={404: {"description": "Notification not found", "model": ErrorResponse}},
    dependencies=[Depends(require_csrf)],
    summary="Mark one notification read",
)
async def mark_read(
    notification_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> NotificationResponse:
    return await notification_service.mark_read(ctx, notification_id)
