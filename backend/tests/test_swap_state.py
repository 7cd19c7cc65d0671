"""
BookSwap Backend - Swap State Machine Unit Tests
==================================================

What:  Tests for the pure transition planner (no database).
How:   Builds transient SwapRequest objects in each state and checks the
       plan (or the error) each actor gets for each event.

What we test:
    ✅ Who may accept / decline, with and without a counter-offer
    ✅ Cancel from PENDING and ACCEPTED, rejected from terminal states
    ✅ Completion under the "first" and "mutual" policies
    ✅ Repeat completion is a no-op; the late party records on COMPLETED
    ✅ Non-participants are refused
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from bookswap.exceptions import ConflictError, ForbiddenError, ValidationError
from bookswap.models.notification import NotificationType
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.services import swap_state
from bookswap.services.swap_state import SwapEvent

REQUESTER_ID = uuid.uuid4()
OWNER_ID = uuid.uuid4()
STRANGER_ID = uuid.uuid4()
NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def make_swap(status=SwapStatus.PENDING, **fields) -> SwapRequest:
    return SwapRequest(
        id=uuid.uuid4(),
        book_id=uuid.uuid4(),
        requester_id=REQUESTER_ID,
        owner_id=OWNER_ID,
        status=status,
        **fields,
    )


class TestAcceptAndDecline:

    def test_owner_accepts_pending_request(self):
        plan = swap_state.plan_accept(make_swap(), OWNER_ID)

        assert plan.event == SwapEvent.ACCEPT
        assert plan.expected_status == SwapStatus.PENDING
        assert plan.new_status == SwapStatus.ACCEPTED
        assert plan.notify_user_id == REQUESTER_ID
        assert plan.notification_type == NotificationType.SWAP_ACCEPTED

    def test_requester_cannot_accept_own_request(self):
        with pytest.raises(ForbiddenError, match="owner"):
            swap_state.plan_accept(make_swap(), REQUESTER_ID)

    def test_counter_offer_hands_acceptance_to_requester(self):
        swap = make_swap(counter_offered_book_id=uuid.uuid4())

        plan = swap_state.plan_accept(swap, REQUESTER_ID)
        assert plan.new_status == SwapStatus.ACCEPTED
        assert plan.notify_user_id == OWNER_ID

        with pytest.raises(ForbiddenError, match="counter-offer"):
            swap_state.plan_accept(swap, OWNER_ID)

    def test_accept_rejected_once_accepted(self):
        with pytest.raises(ConflictError, match="ACCEPTED"):
            swap_state.plan_accept(make_swap(SwapStatus.ACCEPTED), OWNER_ID)

    def test_owner_declines(self):
        plan = swap_state.plan_decline(make_swap(), OWNER_ID)
        assert plan.new_status == SwapStatus.DECLINED
        assert plan.notify_user_id == REQUESTER_ID

    def test_requester_declines_only_a_counter_offer(self):
        with pytest.raises(ForbiddenError):
            swap_state.plan_decline(make_swap(), REQUESTER_ID)

        plan = swap_state.plan_decline(make_swap(counter_offered_book_id=uuid.uuid4()), REQUESTER_ID)
        assert plan.new_status == SwapStatus.DECLINED
        assert plan.notify_user_id == OWNER_ID

    def test_stranger_is_forbidden(self):
        with pytest.raises(ForbiddenError):
            swap_state.plan_accept(make_swap(), STRANGER_ID)
        with pytest.raises(ForbiddenError):
            swap_state.plan_cancel(make_swap(), STRANGER_ID)


class TestCancel:

    @pytest.mark.parametrize("status", [SwapStatus.PENDING, SwapStatus.ACCEPTED])
    @pytest.mark.parametrize("actor", [REQUESTER_ID, OWNER_ID])
    def test_either_party_cancels_active_swap(self, status, actor):
        plan = swap_state.plan_cancel(make_swap(status), actor)

        assert plan.expected_status == status
        assert plan.new_status == SwapStatus.CANCELLED
        assert plan.values == {"cancelled_by": actor}
        assert plan.notify_user_id == (OWNER_ID if actor == REQUESTER_ID else REQUESTER_ID)

    @pytest.mark.parametrize(
        "status",
        [SwapStatus.DECLINED, SwapStatus.CANCELLED, SwapStatus.COMPLETED],
    )
    def test_terminal_swaps_cannot_be_cancelled(self, status):
        with pytest.raises(ConflictError) as exc_info:
            swap_state.plan_cancel(make_swap(status), OWNER_ID)
        assert exc_info.value.context["status"] == status.value


class TestCounterOffer:

    def test_owner_proposes_another_book(self):
        other_book = uuid.uuid4()
        plan = swap_state.plan_counter_offer(make_swap(), OWNER_ID, other_book, "How about this one?")

        assert plan.new_status == SwapStatus.PENDING
        assert plan.values == {
            "counter_offered_book_id": other_book,
            "counter_offer_message": "How about this one?",
        }
        assert plan.notify_user_id == REQUESTER_ID
        assert plan.notification_type == NotificationType.SWAP_COUNTER_OFFER

    def test_requester_cannot_counter_offer(self):
        with pytest.raises(ForbiddenError):
            swap_state.plan_counter_offer(make_swap(), REQUESTER_ID, uuid.uuid4())

    def test_counter_offer_of_the_requested_book_is_invalid(self):
        swap = make_swap()
        with pytest.raises(ValidationError) as exc_info:
            swap_state.plan_counter_offer(swap, OWNER_ID, swap.book_id)
        assert exc_info.value.field == "counter_offered_book_id"

    def test_counter_offer_only_while_pending(self):
        with pytest.raises(ConflictError):
            swap_state.plan_counter_offer(make_swap(SwapStatus.ACCEPTED), OWNER_ID, uuid.uuid4())


class TestComplete:

    def test_pending_swap_cannot_be_completed(self):
        with pytest.raises(ConflictError):
            swap_state.plan_complete(make_swap(), REQUESTER_ID, now=NOW, rating=5)

    def test_first_policy_finalizes_on_first_completion(self):
        plan = swap_state.plan_complete(
            make_swap(SwapStatus.ACCEPTED), REQUESTER_ID, now=NOW, rating=5, feedback="Great"
        )

        assert plan.new_status == SwapStatus.COMPLETED
        assert plan.finalizes
        assert plan.values == {
            "requester_completed_at": NOW,
            "requester_rating": 5,
            "requester_feedback": "Great",
            "completed_at": NOW,
        }
        assert plan.expect_null == ("requester_completed_at",)
        assert plan.notify_user_id == OWNER_ID

    def test_mutual_policy_waits_for_both_parties(self):
        plan = swap_state.plan_complete(
            make_swap(SwapStatus.ACCEPTED), OWNER_ID, now=NOW, rating=4, policy="mutual"
        )

        assert plan.new_status == SwapStatus.ACCEPTED
        assert not plan.finalizes
        assert "completed_at" not in plan.values
        assert plan.expect_null == ("owner_completed_at", "requester_completed_at")

    def test_mutual_policy_finalizes_with_the_later_timestamp(self):
        earlier = NOW - timedelta(hours=3)
        swap = make_swap(SwapStatus.ACCEPTED, requester_completed_at=earlier, requester_rating=5)

        plan = swap_state.plan_complete(swap, OWNER_ID, now=NOW, rating=3, policy="mutual")

        assert plan.new_status == SwapStatus.COMPLETED
        assert plan.finalizes
        assert plan.values["completed_at"] == NOW
        assert plan.values["owner_rating"] == 3

    def test_late_party_records_on_completed_swap(self):
        swap = make_swap(
            SwapStatus.COMPLETED,
            requester_completed_at=NOW,
            completed_at=NOW,
            requester_rating=5,
        )
        later = NOW + timedelta(days=1)

        plan = swap_state.plan_complete(swap, OWNER_ID, now=later, rating=4)

        assert plan.expected_status == SwapStatus.COMPLETED
        assert plan.new_status == SwapStatus.COMPLETED
        assert not plan.finalizes
        assert "completed_at" not in plan.values
        assert plan.values["owner_completed_at"] == later

    def test_completing_twice_is_a_no_op(self):
        swap = make_swap(
            SwapStatus.COMPLETED,
            requester_completed_at=NOW,
            completed_at=NOW,
        )

        plan = swap_state.plan_complete(swap, REQUESTER_ID, now=NOW, rating=1)

        assert plan.no_op
        assert plan.values == {}
        assert plan.notify_user_id is None

    def test_stranger_cannot_complete(self):
        with pytest.raises(ForbiddenError):
            swap_state.plan_complete(make_swap(SwapStatus.ACCEPTED), STRANGER_ID, now=NOW, rating=5)
