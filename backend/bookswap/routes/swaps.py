"""
BookSwap Backend - Swap Route Handlers
========================================

What:  HTTP surface of the swap lifecycle.

Route Inventory:
    GET    /api/swaps                      incoming + outgoing requests
    POST   /api/swaps                      create a request (PENDING)
    GET    /api/swaps/{id}                 one request, participants only
    PUT    /api/swaps/{id}                 {status: ACCEPTED|DECLINED|CANCELLED}
    PATCH  /api/swaps/{id}                 {rating, feedback?} marks complete
    DELETE /api/swaps/{id}                 cancel
    POST   /api/swaps/{id}/counter-offer   owner proposes another book
"""

import uuid

from fastapi import APIRouter, Depends

from bookswap.context import RequestContext, get_request_context
from bookswap.schemas.common import ErrorResponse
from bookswap.schemas.swap import (
    CounterOfferCreate,
    SwapComplete,
    SwapCreate,
    SwapEnvelope,
    SwapListResponse,
    SwapStatusUpdate,
)
from bookswap.security import require_csrf
from bookswap.services.swap_service import swap_service

router = APIRouter(prefix="/api/swaps", tags=["Swaps"])

_TRANSITION_ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    401: {"description": "Not signed in", "model": ErrorResponse},
    403: {"description": "Wrong participant, or missing CSRF token", "model": ErrorResponse},
    404: {"description": "Swap request not found", "model": ErrorResponse},
    409: {"description": "Illegal transition or concurrent update", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
}


@router.get("", response_model=SwapListResponse, summary="List the caller's swap requests")
async def list_swaps(ctx: RequestContext = Depends(get_request_context)) -> SwapListResponse:
    return await swap_service.list_swaps(ctx)


@router.post(
    "",
    status_code=201,
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    dependencies=[Depends(require_csrf)],
    summary="Request a swap for someone else's book",
)
async def create_swap(
    data: SwapCreate,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.create_swap(ctx, data)


@router.get(
    "/{swap_id}",
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    summary="Get one swap request",
)
async def get_swap(
    swap_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.get_swap(ctx, swap_id)


@router.put(
    "/{swap_id}",
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    dependencies=[Depends(require_csrf)],
    summary="Accept, decline or cancel a swap request",
)
async def update_swap_status(
    swap_id: uuid.UUID,
    data: SwapStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.update_status(ctx, swap_id, data)


@router.patch(
    "/{swap_id}",
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    dependencies=[Depends(require_csrf)],
    summary="Mark a swap complete and rate the other party",
)
async def complete_swap(
    swap_id: uuid.UUID,
    data: SwapComplete,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.complete_swap(ctx, swap_id, data)


@router.delete(
    "/{swap_id}",
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    dependencies=[Depends(require_csrf)],
    summary="Cancel a swap request",
)
async def cancel_swap(
    swap_id: uuid.UUID,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.cancel_swap(ctx, swap_id)


@router.post(
    "/{swap_id}/counter-offer",
    response_model=SwapEnvelope,
    responses=_TRANSITION_ERRORS,
    dependencies=[Depends(require_csrf)],
    summary="Propose a different book on a pending request",
)
async def counter_offer(
    swap_id: uuid.UUID,
    data: CounterOfferCreate,
    ctx: RequestContext = Depends(get_request_context),
) -> SwapEnvelope:
    return await swap_service.counter_offer(ctx, swap_id, data)
