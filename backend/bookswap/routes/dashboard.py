"""
BookSwap Backend - Dashboard Route
====================================
"""

from fastapi import APIRouter, Depends

from bookswap.context import RequestContext, get_request_context
from bookswap.schemas.profile import DashboardResponse
from bookswap.services.dashboard_service import dashboard_service

router = APIRouter(prefix="/api", tags=["Dashboard"])


@router.get("/dashboard", response_model=DashboardResponse, summary="Everything the dashboard shows")
async def get_dashboard(ctx: RequestContext = Depends(get_request_context)) -> DashboardResponse:
    # The sections read in their own sessions; a profile created for a
    # first-time caller must be committed before they can see it
    await ctx.db.commit()
    return await dashboard_service.build(ctx.user_id)
