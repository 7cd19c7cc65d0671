"""
BookSwap Backend - Swap Service Tests
=======================================

What:  Tests for SwapService against a real (SQLite) database.
How:   Alice owns the requested book, Bob asks for it and offers one of his.
       Each test drives the swap through the service and reads the rows back.

What we test:
    ✅ Create: own book, unavailable book, bad offered book, duplicates
    ✅ Accept / decline / cancel, with book reservation and release
    ✅ Counter-offers, including who may then accept
    ✅ Completion under both policies, book ownership transfer
    ✅ Lost compare-and-set races surface as ConflictError
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from bookswap.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
)
from bookswap.models.book import Book
from bookswap.models.notification import Notification, NotificationType
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.schemas.book import BookUpdate
from bookswap.schemas.swap import CounterOfferCreate, SwapComplete, SwapCreate, SwapStatusUpdate
from bookswap.services.book_service import BookService
from bookswap.services.swap_service import SwapService

from conftest import ctx_for


async def reload(db, model, row_id):
    result = await db.execute(
        select(model).where(model.id == row_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def notifications_for(db, user_id):
    rows = await db.execute(
        select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at)
    )
    return list(rows.scalars().all())


@pytest_asyncio.fixture
async def world(db_session, make_user, make_book):
    """Alice owns Dune and Emma; Bob owns Persuasion."""
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    dune = await make_book(alice, "Dune")
    emma = await make_book(alice, "Emma", authors=["Jane Austen"])
    persuasion = await make_book(bob, "Persuasion", authors=["Jane Austen"])
    await db_session.commit()
    return {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "dune": dune,
        "emma": emma,
        "persuasion": persuasion,
        "alice_ctx": ctx_for(db_session, alice.id),
        "bob_ctx": ctx_for(db_session, bob.id),
        "carol_ctx": ctx_for(db_session, carol.id),
    }


async def open_swap(service, world, offered=True):
    data = SwapCreate(
        book_id=world["dune"].id,
        message="Swap?",
        offered_book_id=world["persuasion"].id if offered else None,
    )
    envelope = await service.create_swap(world["bob_ctx"], data)
    return envelope.swap


class TestCreateSwap:

    def setup_method(self):
        self.service = SwapService()

    @pytest.mark.asyncio
    async def test_create_opens_pending_request_and_notifies_owner(self, db_session, world):
        swap = await open_swap(self.service, world)

        assert swap.status == SwapStatus.PENDING
        assert swap.owner_id == world["alice"].id
        assert swap.requester_id == world["bob"].id
        assert swap.book.title == "Dune"
        assert swap.offered_book.title == "Persuasion"
        assert swap.requester.username == "bob"

        [notification] = await notifications_for(db_session, world["alice"].id)
        assert notification.type == NotificationType.SWAP_REQUEST
        assert notification.data["swap_request_id"] == str(swap.id)
        assert notification.data["requester_id"] == str(world["bob"].id)
        assert "Dune" in notification.message

    @pytest.mark.asyncio
    async def test_cannot_request_own_book(self, world):
        with pytest.raises(InvalidOperationError, match="your own book"):
            await self.service.create_swap(world["alice_ctx"], SwapCreate(book_id=world["dune"].id))

    @pytest.mark.asyncio
    async def test_cannot_request_unavailable_book(self, db_session, world):
        world["dune"].is_available = False
        await db_session.flush()

        with pytest.raises(InvalidOperationError, match="not available"):
            await open_swap(self.service, world)

    @pytest.mark.asyncio
    async def test_offered_book_must_be_requesters(self, world):
        data = SwapCreate(book_id=world["dune"].id, offered_book_id=world["emma"].id)
        with pytest.raises(InvalidOperationError, match="offered book"):
            await self.service.create_swap(world["bob_ctx"], data)

    @pytest.mark.asyncio
    async def test_missing_book(self, world):
        with pytest.raises(NotFoundError):
            await self.service.create_swap(world["bob_ctx"], SwapCreate(book_id=uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_duplicate_active_request_conflicts(self, world):
        await open_swap(self.service, world, offered=False)
        with pytest.raises(ConflictError, match="already have an active"):
            await open_swap(self.service, world, offered=False)

    @pytest.mark.asyncio
    async def test_new_request_allowed_after_decline(self, world):
        swap = await open_swap(self.service, world, offered=False)
        await self.service.update_status(
            world["alice_ctx"], swap.id, SwapStatusUpdate(status="DECLINED")
        )

        again = await open_swap(self.service, world, offered=False)
        assert again.id != swap.id


class TestTransitions:

    def setup_method(self):
        self.service = SwapService()

    @pytest.mark.asyncio
    async def test_accept_reserves_both_books(self, db_session, world):
        swap = await open_swap(self.service, world)

        result = await self.service.update_status(
            world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED")
        )

        assert result.swap.status == SwapStatus.ACCEPTED
        assert not (await reload(db_session, Book, world["dune"].id)).is_available
        assert not (await reload(db_session, Book, world["persuasion"].id)).is_available
        kinds = [n.type for n in await notifications_for(db_session, world["bob"].id)]
        assert kinds == [NotificationType.SWAP_ACCEPTED]

    @pytest.mark.asyncio
    async def test_requester_cannot_accept(self, world):
        swap = await open_swap(self.service, world)
        with pytest.raises(ForbiddenError):
            await self.service.update_status(
                world["bob_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED")
            )

    @pytest.mark.asyncio
    async def test_accept_fails_when_book_was_taken_meanwhile(self, db_session, world):
        swap = await open_swap(self.service, world)
        world["persuasion"].is_available = False
        await db_session.flush()

        with pytest.raises(ConflictError, match="no longer available"):
            await self.service.update_status(
                world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED")
            )
        assert (await reload(db_session, SwapRequest, swap.id)).status == SwapStatus.PENDING

    @pytest.mark.asyncio
    async def test_owner_cannot_relist_a_reserved_book(self, db_session, world):
        swap = await open_swap(self.service, world)
        await self.service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))
        books = BookService()

        with pytest.raises(ConflictError, match="reserved by an accepted swap"):
            await books.update_book(world["alice_ctx"], world["dune"].id, BookUpdate(is_available=True))
        assert not (await reload(db_session, Book, world["dune"].id)).is_available

        # Other edits are still allowed
        edited = await books.update_book(
            world["alice_ctx"], world["dune"].id, BookUpdate(genre="Science Fiction")
        )
        assert edited.book.genre == "Science Fiction"

    @pytest.mark.asyncio
    async def test_accept_refused_while_another_swap_holds_the_book(self, db_session, world):
        first = await open_swap(self.service, world)
        await self.service.update_status(world["alice_ctx"], first.id, SwapStatusUpdate(status="ACCEPTED"))

        # A stale availability flag lets a second request through
        dune = await reload(db_session, Book, world["dune"].id)
        dune.is_available = True
        await db_session.flush()
        second = (
            await self.service.create_swap(world["carol_ctx"], SwapCreate(book_id=world["dune"].id))
        ).swap

        with pytest.raises(ConflictError, match="reserved by another accepted swap"):
            await self.service.update_status(
                world["alice_ctx"], second.id, SwapStatusUpdate(status="ACCEPTED")
            )
        assert (await reload(db_session, SwapRequest, second.id)).status == SwapStatus.PENDING
        assert (await reload(db_session, SwapRequest, first.id)).status == SwapStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_decline_is_terminal(self, world):
        swap = await open_swap(self.service, world)
        result = await self.service.update_status(
            world["alice_ctx"], swap.id, SwapStatusUpdate(status="DECLINED")
        )
        assert result.swap.status == SwapStatus.DECLINED

        with pytest.raises(ConflictError):
            await self.service.update_status(
                world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED")
            )

    @pytest.mark.asyncio
    async def test_cancel_accepted_swap_releases_books(self, db_session, world):
        swap = await open_swap(self.service, world)
        await self.service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))

        result = await self.service.cancel_swap(world["bob_ctx"], swap.id)

        assert result.swap.status == SwapStatus.CANCELLED
        assert result.swap.cancelled_by == world["bob"].id
        assert (await reload(db_session, Book, world["dune"].id)).is_available
        assert (await reload(db_session, Book, world["persuasion"].id)).is_available
        kinds = [n.type for n in await notifications_for(db_session, world["alice"].id)]
        assert kinds[-1] == NotificationType.SWAP_CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_completed_swap_conflicts(self, world):
        swap = await open_swap(self.service, world)
        await self.service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))
        await self.service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))

        with pytest.raises(ConflictError, match="COMPLETED"):
            await self.service.cancel_swap(world["alice_ctx"], swap.id)

    @pytest.mark.asyncio
    async def test_non_participant_cannot_view_or_act(self, world):
        swap = await open_swap(self.service, world)
        with pytest.raises(ForbiddenError):
            await self.service.get_swap(world["carol_ctx"], swap.id)
        with pytest.raises(ForbiddenError):
            await self.service.cancel_swap(world["carol_ctx"], swap.id)

    @pytest.mark.asyncio
    async def test_lost_race_raises_conflict_without_notification(self, db_session, world):
        swap = await open_swap(self.service, world)
        before = len(await notifications_for(db_session, world["bob"].id))

        with patch.object(self.service, "_compare_and_set", new=AsyncMock(return_value=False)):
            with pytest.raises(ConflictError, match="changed by another request"):
                await self.service.update_status(
                    world["alice_ctx"], swap.id, SwapStatusUpdate(status="DECLINED")
                )

        assert len(await notifications_for(db_session, world["bob"].id)) == before

    @pytest.mark.asyncio
    async def test_compare_and_set_refuses_stale_status(self, db_session, world):
        """A plan made against PENDING doesn't apply once the row moved on."""
        from bookswap.services import swap_state

        swap = await open_swap(self.service, world)
        row = await reload(db_session, SwapRequest, swap.id)
        stale_plan = swap_state.plan_decline(row, world["alice"].id)
        await self.service.cancel_swap(world["bob_ctx"], swap.id)

        assert await self.service._compare_and_set(db_session, row, stale_plan) is False
        assert (await reload(db_session, SwapRequest, swap.id)).status == SwapStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_list_swaps_splits_incoming_and_outgoing(self, world):
        swap = await open_swap(self.service, world)

        alice_view = await self.service.list_swaps(world["alice_ctx"])
        bob_view = await self.service.list_swaps(world["bob_ctx"])

        assert [s.id for s in alice_view.incoming] == [swap.id]
        assert alice_view.outgoing == []
        assert [s.id for s in bob_view.outgoing] == [swap.id]
        assert bob_view.outgoing[0].owner.username == "alice"


class TestCounterOffer:

    def setup_method(self):
        self.service = SwapService()

    @pytest.mark.asyncio
    async def test_counter_offer_then_requester_accepts(self, db_session, world):
        swap = await open_swap(self.service, world)

        countered = await self.service.counter_offer(
            world["alice_ctx"],
            swap.id,
            CounterOfferCreate(counter_offered_book_id=world["emma"].id, counter_offer_message="Emma?"),
        )
        assert countered.swap.status == SwapStatus.PENDING
        assert countered.swap.counter_offered_book.title == "Emma"

        [notice] = await notifications_for(db_session, world["bob"].id)
        assert notice.type == NotificationType.SWAP_COUNTER_OFFER
        assert notice.data["counter_offered_book_id"] == str(world["emma"].id)

        with pytest.raises(ForbiddenError):
            await self.service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))

        accepted = await self.service.update_status(
            world["bob_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED")
        )
        assert accepted.swap.status == SwapStatus.ACCEPTED
        # The counter-offered book is held instead of the requested one
        assert not (await reload(db_session, Book, world["emma"].id)).is_available
        assert (await reload(db_session, Book, world["dune"].id)).is_available

    @pytest.mark.asyncio
    async def test_counter_offer_must_use_owners_available_book(self, db_session, world):
        swap = await open_swap(self.service, world)
        with pytest.raises(InvalidOperationError):
            await self.service.counter_offer(
                world["alice_ctx"],
                swap.id,
                CounterOfferCreate(counter_offered_book_id=world["persuasion"].id),
            )

        world["emma"].is_available = False
        await db_session.flush()
        with pytest.raises(InvalidOperationError):
            await self.service.counter_offer(
                world["alice_ctx"],
                swap.id,
                CounterOfferCreate(counter_offered_book_id=world["emma"].id),
            )


class TestCompletion:

    @pytest.mark.asyncio
    async def test_first_completion_finalizes_and_transfers_books(self, db_session, world):
        service = SwapService(completion_policy="first")
        swap = await open_swap(service, world)
        await service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))

        done = await service.complete_swap(
            world["bob_ctx"], swap.id, SwapComplete(rating=5, feedback="Lovely copy")
        )

        assert done.swap.status == SwapStatus.COMPLETED
        assert done.swap.completed_at == done.swap.requester_completed_at
        assert done.swap.requester_rating == 5
        assert done.swap.requester_feedback == "Lovely copy"

        dune = await reload(db_session, Book, world["dune"].id)
        persuasion = await reload(db_session, Book, world["persuasion"].id)
        assert dune.owner_id == world["bob"].id and dune.is_available
        assert persuasion.owner_id == world["alice"].id and persuasion.is_available

        [notice] = [
            n for n in await notifications_for(db_session, world["alice"].id)
            if n.type == NotificationType.SWAP_COMPLETED
        ]
        assert notice.data["rating"] == 5
        assert notice.data["completed_by"] == str(world["bob"].id)

    @pytest.mark.asyncio
    async def test_other_party_completes_later_without_moving_completed_at(self, db_session, world):
        service = SwapService(completion_policy="first")
        swap = await open_swap(service, world)
        await service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))
        first = await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))

        second = await service.complete_swap(world["alice_ctx"], swap.id, SwapComplete(rating=4))

        assert second.swap.status == SwapStatus.COMPLETED
        assert second.swap.completed_at == first.swap.completed_at
        assert second.swap.owner_rating == 4
        assert second.swap.owner_completed_at is not None
        # Books changed hands exactly once
        assert (await reload(db_session, Book, world["dune"].id)).owner_id == world["bob"].id

    @pytest.mark.asyncio
    async def test_repeat_completion_is_a_no_op(self, db_session, world):
        service = SwapService(completion_policy="first")
        swap = await open_swap(service, world)
        await service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))
        first = await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))
        notices = len(await notifications_for(db_session, world["alice"].id))

        again = await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=1))

        assert again.swap.requester_rating == 5
        assert again.swap.requester_completed_at == first.swap.requester_completed_at
        assert len(await notifications_for(db_session, world["alice"].id)) == notices

    @pytest.mark.asyncio
    async def test_mutual_policy_needs_both_parties(self, db_session, world):
        service = SwapService(completion_policy="mutual")
        swap = await open_swap(service, world)
        await service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))

        half = await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))
        assert half.swap.status == SwapStatus.ACCEPTED
        assert half.swap.completed_at is None
        assert (await reload(db_session, Book, world["dune"].id)).owner_id == world["alice"].id

        done = await service.complete_swap(world["alice_ctx"], swap.id, SwapComplete(rating=4))
        assert done.swap.status == SwapStatus.COMPLETED
        assert done.swap.completed_at == max(
            done.swap.requester_completed_at, done.swap.owner_completed_at
        )
        assert (await reload(db_session, Book, world["dune"].id)).owner_id == world["bob"].id

    @pytest.mark.asyncio
    async def test_completion_gives_up_after_two_lost_races(self, world):
        service = SwapService()
        swap = await open_swap(service, world)
        await service.update_status(world["alice_ctx"], swap.id, SwapStatusUpdate(status="ACCEPTED"))

        cas = AsyncMock(return_value=False)
        with patch.object(service, "_compare_and_set", new=cas):
            with pytest.raises(ConflictError):
                await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))
        assert cas.await_count == 2

    @pytest.mark.asyncio
    async def test_completing_pending_swap_conflicts(self, world):
        service = SwapService()
        swap = await open_swap(service, world)
        with pytest.raises(ConflictError):
            await service.complete_swap(world["bob_ctx"], swap.id, SwapComplete(rating=5))
