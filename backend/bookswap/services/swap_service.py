"""
BookSwap Backend - Swap Service (Business Logic Orchestrator)
===============================================================

What:  Creates swap requests and drives them through their lifecycle.
How:   swap_state plans each transition; this service applies the plan with
       a compare-and-set UPDATE, then applies the plan's book side effects
       and queues the counterpart's notification, all on the request
       session. One commit covers the transition, the books and the
       notification; a failure anywhere rolls all of them back.
Who:   Swap routes and the dashboard.

Compare-and-set:
    UPDATE swap_requests SET ... WHERE id = :id AND status = :expected
                                   [AND <column> IS NULL ...]
    Exactly one row must change. Zero rows means another request moved the
    swap first; the caller gets ConflictError and nothing else is written.

Book side effects (the "received" book is the counter-offered book when
there is one, otherwise the requested book):
    accept              received + offered books become unavailable
    cancel (ACCEPTED)   received + offered books become available again
    complete (final)    received book → requester, offered book → owner,
                        both available again
"""

import logging
import uuid
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.config import settings
from bookswap.context import RequestContext
from bookswap.database import utcnow
from bookswap.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    translate_integrity_error,
)
from bookswap.models.book import Book
from bookswap.models.notification import NotificationType
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.schemas.swap import (
    CounterOfferCreate,
    SwapComplete,
    SwapCreate,
    SwapEnvelope,
    SwapListResponse,
    SwapResponse,
    SwapStatusUpdate,
)
from bookswap.services import swap_state
from bookswap.services.lookups import (
    accepted_swap_holding,
    book_summary,
    load_books,
    load_profiles,
    owner_summary,
)
from bookswap.services.notification_service import notification_service

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (SwapStatus.PENDING, SwapStatus.ACCEPTED)


def received_book_id(swap: SwapRequest) -> uuid.UUID:
    """The book the requester ends up with."""
    return swap.counter_offered_book_id or swap.book_id


def held_book_ids(swap: SwapRequest) -> List[uuid.UUID]:
    return [b for b in (received_book_id(swap), swap.offered_book_id) if b is not None]


class SwapService:
    """
    Business logic layer for swap requests.

    Args:
        completion_policy: "first" or "mutual"; defaults to the configured
                           SWAP_COMPLETION_POLICY at call time
    """

    def __init__(self, completion_policy: Optional[str] = None):
        self._completion_policy = completion_policy

    @property
    def completion_policy(self) -> str:
        return self._completion_policy or settings.swap_completion_policy

    # ══════════════════════════════════════════════════════════════════════
    # Loading & rendering
    # ══════════════════════════════════════════════════════════════════════

    async def _load_swap(self, db: AsyncSession, swap_id: uuid.UUID) -> SwapRequest:
        # populate_existing: a retry must see the row as it is now, not the
        # copy already in the identity map
        swap = (
            await db.execute(
                select(SwapRequest)
                .where(SwapRequest.id == swap_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if swap is None:
            raise NotFoundError(resource="swap request", resource_id=str(swap_id))
        return swap

    async def _load_for_participant(self, ctx: RequestContext, swap_id: uuid.UUID) -> SwapRequest:
        swap = await self._load_swap(ctx.db, swap_id)
        if swap.party_of(ctx.user_id) is None:
            raise ForbiddenError(
                "Only the requester or the owner can view this swap request",
                context={"swap_request_id": str(swap_id)},
            )
        return swap

    async def render(self, db: AsyncSession, swaps: Sequence[SwapRequest]) -> List[SwapResponse]:
        """Swap responses decorated with book and participant summaries."""
        books = await load_books(
            db,
            [s.book_id for s in swaps]
            + [s.offered_book_id for s in swaps]
            + [s.counter_offered_book_id for s in swaps],
        )
        profiles = await load_profiles(
            db, [s.requester_id for s in swaps] + [s.owner_id for s in swaps]
        )

        rendered = []
        for swap in swaps:
            item = SwapResponse.model_validate(swap)
            item.book = book_summary(books.get(swap.book_id))
            item.offered_book = book_summary(books.get(swap.offered_book_id))
            item.counter_offered_book = book_summary(books.get(swap.counter_offered_book_id))
            item.requester = owner_summary(profiles.get(swap.requester_id))
            item.owner = owner_summary(profiles.get(swap.owner_id))
            rendered.append(item)
        return rendered

    async def _envelope(self, db: AsyncSession, swap: SwapRequest) -> SwapEnvelope:
        return SwapEnvelope(swap=(await self.render(db, [swap]))[0])

    async def swaps_for_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: Optional[int] = None,
    ) -> SwapListResponse:
        async def fetch(column) -> List[SwapRequest]:
            query = (
                select(SwapRequest)
                .where(column == user_id)
                .order_by(SwapRequest.created_at.desc(), SwapRequest.id)
            )
            if limit is not None:
                query = query.limit(limit)
            return list((await db.execute(query)).scalars().all())

        incoming = await fetch(SwapRequest.owner_id)
        outgoing = await fetch(SwapRequest.requester_id)
        return SwapListResponse(
            incoming=await self.render(db, incoming),
            outgoing=await self.render(db, outgoing),
        )

    async def list_swaps(self, ctx: RequestContext) -> SwapListResponse:
        return await self.swaps_for_user(ctx.db, ctx.user_id)

    async def get_swap(self, ctx: RequestContext, swap_id: uuid.UUID) -> SwapEnvelope:
        swap = await self._load_for_participant(ctx, swap_id)
        return await self._envelope(ctx.db, swap)

    # ══════════════════════════════════════════════════════════════════════
    # Create
    # ══════════════════════════════════════════════════════════════════════

    async def create_swap(self, ctx: RequestContext, data: SwapCreate) -> SwapEnvelope:
        """
        Open a PENDING request for someone else's available book.

        Raises:
            NotFoundError: The requested book doesn't exist
            InvalidOperationError: Own book, unavailable book, or an offered
                                   book that isn't the caller's available book
            ConflictError: The caller already has an active request for it
        """
        db = ctx.db
        books = await load_books(db, [data.book_id, data.offered_book_id])
        book = books.get(data.book_id)
        if book is None:
            raise NotFoundError(resource="book", resource_id=str(data.book_id))
        if book.owner_id == ctx.user_id:
            raise InvalidOperationError(
                "You cannot request a swap for your own book",
                context={"book_id": str(book.id)},
            )
        if not book.is_available:
            raise InvalidOperationError(
                "This book is not available for swapping",
                context={"book_id": str(book.id)},
            )

        if data.offered_book_id is not None:
            offered = books.get(data.offered_book_id)
            if offered is None or offered.owner_id != ctx.user_id or not offered.is_available:
                raise InvalidOperationError(
                    "The offered book must be one of your available books",
                    context={"offered_book_id": str(data.offered_book_id)},
                )

        duplicate = await db.execute(
            select(SwapRequest.id).where(
                SwapRequest.requester_id == ctx.user_id,
                SwapRequest.book_id == book.id,
                SwapRequest.status.in_(ACTIVE_STATUSES),
            ).limit(1)
        )
        if duplicate.first() is not None:
            raise ConflictError(
                "You already have an active swap request for this book",
                context={"book_id": str(book.id)},
            )

        swap = SwapRequest(
            book_id=book.id,
            requester_id=ctx.user_id,
            owner_id=book.owner_id,
            offered_book_id=data.offered_book_id,
            status=SwapStatus.PENDING,
            message=data.message,
        )
        db.add(swap)
        try:
            await db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e, resource="swap request")
        await db.refresh(swap)

        await notification_service.notify_swap_event(
            db,
            swap,
            NotificationType.SWAP_REQUEST,
            actor_id=ctx.user_id,
            recipient_id=swap.owner_id,
            book_title=book.title,
        )
        logger.info("Swap %s created by %s for book %s", swap.id, ctx.user_id, book.id)
        return await self._envelope(db, swap)

    # ══════════════════════════════════════════════════════════════════════
    # Transitions
    # ══════════════════════════════════════════════════════════════════════

    async def _compare_and_set(
        self, db: AsyncSession, swap: SwapRequest, plan: swap_state.TransitionPlan
    ) -> bool:
        """Write the plan if the row still matches it. Returns False when it didn't."""
        guards = [getattr(SwapRequest, column).is_(None) for column in plan.expect_null]
        stmt = (
            update(SwapRequest)
            .where(
                SwapRequest.id == swap.id,
                SwapRequest.status == plan.expected_status,
                *guards,
            )
            .values(status=plan.new_status, updated_at=utcnow(), **plan.values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(stmt)
        except IntegrityError as e:
            raise translate_integrity_error(e, resource="swap request")
        if result.rowcount != 1:
            return False
        await db.refresh(swap)
        return True

    async def _set_books(self, db: AsyncSession, book_ids: Iterable[uuid.UUID], **values) -> None:
        ids = [b for b in book_ids if b is not None]
        if not ids:
            return
        await db.execute(
            update(Book)
            .where(Book.id.in_(ids))
            .values(**values)
        )

    async def _check_books_still_free(self, db: AsyncSession, swap: SwapRequest) -> None:
        """Before accepting: every book the swap would hold is available and with its party."""
        expected_owner = {received_book_id(swap): swap.owner_id}
        if swap.offered_book_id is not None:
            expected_owner[swap.offered_book_id] = swap.requester_id
        books = await load_books(db, expected_owner)

        for book_id, owner_id in expected_owner.items():
            book = books.get(book_id)
            if book is None or book.owner_id != owner_id or not book.is_available:
                raise ConflictError(
                    "A book in this swap is no longer available",
                    context={"swap_request_id": str(swap.id), "book_id": str(book_id)},
                )

        # The flag alone can be stale; a reservation by another swap wins
        holder = await accepted_swap_holding(db, expected_owner, exclude_swap_id=swap.id)
        if holder is not None:
            raise ConflictError(
                "A book in this swap is reserved by another accepted swap",
                context={"swap_request_id": str(swap.id), "held_by": str(holder.id)},
            )

    async def _apply_side_effects(
        self,
        db: AsyncSession,
        swap: SwapRequest,
        plan: swap_state.TransitionPlan,
        previous_status: SwapStatus,
    ) -> None:
        event = plan.event
        if event == swap_state.SwapEvent.ACCEPT:
            await self._set_books(db, held_book_ids(swap), is_available=False)
        elif event == swap_state.SwapEvent.CANCEL and previous_status == SwapStatus.ACCEPTED:
            await self._set_books(db, held_book_ids(swap), is_available=True)
        elif event == swap_state.SwapEvent.COMPLETE and plan.finalizes:
            await self._set_books(
                db, [received_book_id(swap)], owner_id=swap.requester_id, is_available=True
            )
            await self._set_books(
                db, [swap.offered_book_id], owner_id=swap.owner_id, is_available=True
            )

    async def _transition(
        self,
        ctx: RequestContext,
        swap: SwapRequest,
        plan: swap_state.TransitionPlan,
        rating: Optional[int] = None,
    ) -> bool:
        """Apply one plan with its side effects and notification. False if it lost the race."""
        if plan.no_op:
            return True
        db = ctx.db
        previous_status = swap.status

        if plan.event == swap_state.SwapEvent.ACCEPT:
            await self._check_books_still_free(db, swap)

        if not await self._compare_and_set(db, swap, plan):
            return False

        await self._apply_side_effects(db, swap, plan, previous_status)

        if plan.notify_user_id is not None:
            books = await load_books(db, [swap.book_id])
            book = books.get(swap.book_id)
            await notification_service.notify_swap_event(
                db,
                swap,
                plan.notification_type,
                actor_id=ctx.user_id,
                recipient_id=plan.notify_user_id,
                book_title=book.title if book else None,
                rating=rating,
            )

        logger.info(
            "Swap %s: %s by %s (%s → %s)",
            swap.id,
            plan.event.value,
            ctx.user_id,
            previous_status.value,
            swap.status.value,
        )
        return True

    def _lost_race(self, swap: SwapRequest) -> ConflictError:
        return ConflictError(
            "The swap request was changed by another request. Reload and try again.",
            context={"swap_request_id": str(swap.id)},
        )

    async def update_status(
        self, ctx: RequestContext, swap_id: uuid.UUID, data: SwapStatusUpdate
    ) -> SwapEnvelope:
        """Accept, decline or cancel, as requested by PUT /api/swaps/{id}."""
        swap = await self._load_for_participant(ctx, swap_id)
        planners = {
            "ACCEPTED": swap_state.plan_accept,
            "DECLINED": swap_state.plan_decline,
            "CANCELLED": swap_state.plan_cancel,
        }
        plan = planners[data.status](swap, ctx.user_id)
        if not await self._transition(ctx, swap, plan):
            raise self._lost_race(swap)
        return await self._envelope(ctx.db, swap)

    async def cancel_swap(self, ctx: RequestContext, swap_id: uuid.UUID) -> SwapEnvelope:
        swap = await self._load_for_participant(ctx, swap_id)
        plan = swap_state.plan_cancel(swap, ctx.user_id)
        if not await self._transition(ctx, swap, plan):
            raise self._lost_race(swap)
        return await self._envelope(ctx.db, swap)

    async def counter_offer(
        self, ctx: RequestContext, swap_id: uuid.UUID, data: CounterOfferCreate
    ) -> SwapEnvelope:
        """
        Owner proposes one of their other available books instead.

        Raises:
            InvalidOperationError: The proposed book isn't the owner's available book
        """
        swap = await self._load_for_participant(ctx, swap_id)
        plan = swap_state.plan_counter_offer(
            swap, ctx.user_id, data.counter_offered_book_id, data.counter_offer_message
        )

        books = await load_books(ctx.db, [data.counter_offered_book_id])
        book = books.get(data.counter_offered_book_id)
        if book is None or book.owner_id != ctx.user_id or not book.is_available:
            raise InvalidOperationError(
                "The counter-offered book must be one of your available books",
                context={"counter_offered_book_id": str(data.counter_offered_book_id)},
            )

        if not await self._transition(ctx, swap, plan):
            raise self._lost_race(swap)
        return await self._envelope(ctx.db, swap)

    async def complete_swap(
        self, ctx: RequestContext, swap_id: uuid.UUID, data: SwapComplete
    ) -> SwapEnvelope:
        """
        Record the caller's completion, rating and feedback.

        Both parties may complete at the same moment. The loser of that race
        re-reads the row and plans again once: under the "first" policy it
        then records its own fields on the COMPLETED swap, under "mutual" it
        becomes the completion that finalizes.
        """
        for attempt in range(2):
            swap = await self._load_for_participant(ctx, swap_id)
            plan = swap_state.plan_complete(
                swap,
                ctx.user_id,
                now=utcnow(),
                rating=data.rating,
                feedback=data.feedback,
                policy=self.completion_policy,
            )
            if await self._transition(ctx, swap, plan, rating=data.rating):
                return await self._envelope(ctx.db, swap)
            logger.info("Swap %s completion lost a race (attempt %d)", swap_id, attempt + 1)
        raise self._lost_race(swap)

    # ══════════════════════════════════════════════════════════════════════
    # Aggregates
    # ══════════════════════════════════════════════════════════════════════

    async def swaps_involving(self, db: AsyncSession, user_id: uuid.UUID) -> List[SwapRequest]:
        rows = await db.execute(
            select(SwapRequest).where(
                or_(SwapRequest.requester_id == user_id, SwapRequest.owner_id == user_id)
            )
        )
        return list(rows.scalars().all())


# ── Singleton Instance ────────────────────────────────────────────────────
swap_service = SwapService()
