"""
BookSwap Backend - Dashboard Service
======================================

What:  Assembles the dashboard (profile, books, swaps, notifications,
       ratings) in one response.
How:   Every section is fetched concurrently with asyncio.gather, each in
       its own session and under its own deadline (DASHBOARD_FETCH_TIMEOUT).
       A section that fails or times out falls back to its empty default
       and is named in `degraded`; the other sections are unaffected.
Who:   GET /api/dashboard.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.config import settings
from bookswap.context import RequestContext
from bookswap.database import async_session_factory
from bookswap.schemas.profile import DashboardResponse
from bookswap.schemas.swap import SwapListResponse
from bookswap.services.book_service import book_service
from bookswap.services.notification_service import notification_service
from bookswap.services.profile_service import profile_service
from bookswap.services.swap_service import swap_service

logger = logging.getLogger(__name__)

RECENT_ITEMS = 5

Fetch = Callable[[AsyncSession], Awaitable[Any]]


class DashboardService:

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout or settings.dashboard_fetch_timeout

    async def _fetch(self, name: str, fetch: Fetch, default: Any) -> Tuple[str, Any, bool]:
        """Run one section; returns (name, value, degraded)."""

        async def run() -> Any:
            async with self.session_factory() as session:
                return await fetch(session)

        try:
            return name, await asyncio.wait_for(run(), timeout=self.timeout), False
        except asyncio.TimeoutError:
            logger.warning("Dashboard section '%s' timed out after %.1fs", name, self.timeout)
        except Exception as e:
            logger.error("Dashboard section '%s' failed: %s", name, str(e), exc_info=True)
        return name, default, True

    async def build(self, user_id: uuid.UUID) -> DashboardResponse:
        def ctx(session: AsyncSession) -> RequestContext:
            return RequestContext(user_id=user_id, db=session)

        async def recent_books(session):
            return (await book_service.list_books(ctx(session), limit=RECENT_ITEMS)).books

        async def recent_notifications(session):
            result = await notification_service.list_notifications(ctx(session), limit=RECENT_ITEMS)
            return result.notifications

        sections = [
            ("profile", lambda s: profile_service.find_profile(s, user_id), None),
            ("book_count", lambda s: book_service.count_books(s, user_id), 0),
            ("recent_books", recent_books, []),
            (
                "swaps",
                lambda s: swap_service.swaps_for_user(s, user_id, limit=RECENT_ITEMS),
                SwapListResponse(incoming=[], outgoing=[]),
            ),
            ("unread_notifications", lambda s: notification_service.count_unread(s, user_id), 0),
            ("recent_notifications", recent_notifications, []),
            ("ratings", lambda s: profile_service.rating_summary(s, user_id), None),
        ]

        results = await asyncio.gather(
            *(self._fetch(name, fetch, default) for name, fetch, default in sections)
        )

        values = {name: value for name, value, _ in results}
        swaps: SwapListResponse = values.pop("swaps")
        return DashboardResponse(
            **values,
            incoming_swaps=swaps.incoming,
            outgoing_swaps=swaps.outgoing,
            degraded=[name for name, _, degraded in results if degraded],
        )


# ── Singleton Instance ────────────────────────────────────────────────────
dashboard_service = DashboardService()
