"""
BookSwap Backend - Swap State Machine
=======================================

What:  The legal transitions of a swap request and the column changes each
       one makes.
How:   Pure functions: given the current row, the acting user and the event
       arguments, return a TransitionPlan (or raise). Nothing here touches
       the database; SwapService applies a plan with a compare-and-set
       UPDATE guarded on `expected_status` and `expect_null`.
Who:   SwapService is the only caller.

Transitions:
    PENDING   accept         → ACCEPTED    owner; the requester instead when a
                                           counter-offer is outstanding
    PENDING   decline        → DECLINED    owner; also the requester when a
                                           counter-offer is outstanding
    PENDING   counter_offer  → PENDING     owner
    PENDING   cancel         → CANCELLED   either party
    ACCEPTED  cancel         → CANCELLED   either party
    ACCEPTED  complete       → COMPLETED   either party ("first" policy)
                             → ACCEPTED    first of two ("mutual" policy)
    COMPLETED complete       → COMPLETED   the party who hasn't recorded yet;
                                           completed_at is left untouched

Anything else raises ConflictError (wrong state) or ForbiddenError (wrong
actor) and produces no plan.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from bookswap.exceptions import ConflictError, ForbiddenError, ValidationError
from bookswap.models.notification import NotificationType
from bookswap.models.swap import SwapRequest, SwapStatus

REQUESTER = "requester"
OWNER = "owner"


class SwapEvent(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COUNTER_OFFER = "counter_offer"
    COMPLETE = "complete"


ALLOWED_FROM = {
    SwapEvent.ACCEPT: frozenset({SwapStatus.PENDING}),
    SwapEvent.DECLINE: frozenset({SwapStatus.PENDING}),
    SwapEvent.COUNTER_OFFER: frozenset({SwapStatus.PENDING}),
    SwapEvent.CANCEL: frozenset({SwapStatus.PENDING, SwapStatus.ACCEPTED}),
    SwapEvent.COMPLETE: frozenset({SwapStatus.ACCEPTED, SwapStatus.COMPLETED}),
}

NOTIFICATION_FOR_EVENT = {
    SwapEvent.ACCEPT: NotificationType.SWAP_ACCEPTED,
    SwapEvent.DECLINE: NotificationType.SWAP_DECLINED,
    SwapEvent.CANCEL: NotificationType.SWAP_CANCELLED,
    SwapEvent.COUNTER_OFFER: NotificationType.SWAP_COUNTER_OFFER,
    SwapEvent.COMPLETE: NotificationType.SWAP_COMPLETED,
}


@dataclass(frozen=True)
class TransitionPlan:
    """
    The outcome of applying one event to one swap.

    Attributes:
        expected_status: Status the row must still have when the UPDATE runs
        new_status: Status written by the UPDATE
        values: Other columns to write
        expect_null: Columns that must still be NULL when the UPDATE runs
        notify_user_id: Counterpart who gets a notification, if any
        no_op: True when the event changes nothing (repeat completion)
    """

    event: SwapEvent
    actor_id: uuid.UUID
    expected_status: SwapStatus
    new_status: SwapStatus
    values: Dict[str, Any] = field(default_factory=dict)
    expect_null: Tuple[str, ...] = ()
    notify_user_id: Optional[uuid.UUID] = None
    no_op: bool = False

    @property
    def notification_type(self) -> NotificationType:
        return NOTIFICATION_FOR_EVENT[self.event]

    @property
    def finalizes(self) -> bool:
        """True when this plan is the one that moves the swap into COMPLETED."""
        return self.expected_status != SwapStatus.COMPLETED and self.new_status == SwapStatus.COMPLETED


def _party(swap: SwapRequest, actor_id: uuid.UUID) -> str:
    party = swap.party_of(actor_id)
    if party is None:
        raise ForbiddenError(
            "Only the requester or the owner can act on this swap request",
            context={"swap_request_id": str(swap.id)},
        )
    return party


def _require_status(swap: SwapRequest, event: SwapEvent) -> None:
    if swap.status not in ALLOWED_FROM[event]:
        raise ConflictError(
            f"Cannot {event.value.replace('_', ' ')} a swap request that is {swap.status.value}",
            context={
                "swap_request_id": str(swap.id),
                "status": swap.status.value,
                "event": event.value,
            },
        )


def plan_accept(swap: SwapRequest, actor_id: uuid.UUID) -> TransitionPlan:
    _require_status(swap, SwapEvent.ACCEPT)
    party = _party(swap, actor_id)

    # A counter-offer hands the decision back to the requester
    deciding_party = REQUESTER if swap.counter_offered_book_id else OWNER
    if party != deciding_party:
        if deciding_party == REQUESTER:
            message = "The requester must accept or decline the counter-offer"
        else:
            message = "Only the book owner can accept a swap request"
        raise ForbiddenError(message, context={"swap_request_id": str(swap.id)})

    return TransitionPlan(
        event=SwapEvent.ACCEPT,
        actor_id=actor_id,
        expected_status=SwapStatus.PENDING,
        new_status=SwapStatus.ACCEPTED,
        notify_user_id=swap.counterpart_of(actor_id),
    )


def plan_decline(swap: SwapRequest, actor_id: uuid.UUID) -> TransitionPlan:
    _require_status(swap, SwapEvent.DECLINE)
    party = _party(swap, actor_id)
    if party == REQUESTER and not swap.counter_offered_book_id:
        raise ForbiddenError(
            "Only the book owner can decline a swap request; cancel it instead",
            context={"swap_request_id": str(swap.id)},
        )

    return TransitionPlan(
        event=SwapEvent.DECLINE,
        actor_id=actor_id,
        expected_status=SwapStatus.PENDING,
        new_status=SwapStatus.DECLINED,
        notify_user_id=swap.counterpart_of(actor_id),
    )


def plan_cancel(swap: SwapRequest, actor_id: uuid.UUID) -> TransitionPlan:
    _require_status(swap, SwapEvent.CANCEL)
    _party(swap, actor_id)

    return TransitionPlan(
        event=SwapEvent.CANCEL,
        actor_id=actor_id,
        expected_status=swap.status,
        new_status=SwapStatus.CANCELLED,
        values={"cancelled_by": actor_id},
        notify_user_id=swap.counterpart_of(actor_id),
    )


def plan_counter_offer(
    swap: SwapRequest,
    actor_id: uuid.UUID,
    counter_offered_book_id: uuid.UUID,
    counter_offer_message: Optional[str] = None,
) -> TransitionPlan:
    """
    The owner proposes a different book of theirs in place of the requested one.

    Ownership and availability of the proposed book are checked by the
    caller, which has database access.
    """
    _require_status(swap, SwapEvent.COUNTER_OFFER)
    if _party(swap, actor_id) != OWNER:
        raise ForbiddenError(
            "Only the book owner can make a counter-offer",
            context={"swap_request_id": str(swap.id)},
        )
    if counter_offered_book_id == swap.book_id:
        raise ValidationError(
            "The counter-offered book must differ from the requested book",
            field="counter_offered_book_id",
        )

    return TransitionPlan(
        event=SwapEvent.COUNTER_OFFER,
        actor_id=actor_id,
        expected_status=SwapStatus.PENDING,
        new_status=SwapStatus.PENDING,
        values={
            "counter_offered_book_id": counter_offered_book_id,
            "counter_offer_message": counter_offer_message,
        },
        notify_user_id=swap.requester_id,
    )


def plan_complete(
    swap: SwapRequest,
    actor_id: uuid.UUID,
    now: datetime,
    rating: Optional[int] = None,
    feedback: Optional[str] = None,
    policy: str = "first",
) -> TransitionPlan:
    """
    Record the actor's completion, rating and feedback.

    first policy:  the first completion while ACCEPTED finalizes the swap
                   with completed_at = coalesce(requester_completed_at,
                   owner_completed_at), which is this completion's time.
    mutual policy: the swap stays ACCEPTED until both parties have
                   completed; then completed_at = the later of the two.

    A party completing a swap that is already COMPLETED records only their
    own fields. Completing twice as the same party is a no-op.
    """
    _require_status(swap, SwapEvent.COMPLETE)
    party = _party(swap, actor_id)
    other = OWNER if party == REQUESTER else REQUESTER
    own_column = f"{party}_completed_at"

    if getattr(swap, own_column) is not None:
        return TransitionPlan(
            event=SwapEvent.COMPLETE,
            actor_id=actor_id,
            expected_status=swap.status,
            new_status=swap.status,
            no_op=True,
        )

    values: Dict[str, Any] = {
        own_column: now,
        f"{party}_rating": rating,
        f"{party}_feedback": feedback,
    }
    expect_null = (own_column,)
    new_status = swap.status

    if swap.status == SwapStatus.ACCEPTED:
        other_completed_at = getattr(swap, f"{other}_completed_at")
        if policy == "mutual":
            if other_completed_at is not None:
                new_status = SwapStatus.COMPLETED
                values["completed_at"] = max(other_completed_at, now)
            else:
                # Both completing at once must not leave the swap stuck in ACCEPTED
                expect_null = (own_column, f"{other}_completed_at")
        else:
            stamps = {party: now, other: other_completed_at}
            new_status = SwapStatus.COMPLETED
            values["completed_at"] = stamps[REQUESTER] or stamps[OWNER]

    return TransitionPlan(
        event=SwapEvent.COMPLETE,
        actor_id=actor_id,
        expected_status=swap.status,
        new_status=new_status,
        values=values,
        expect_null=expect_null,
        notify_user_id=swap.counterpart_of(actor_id),
    )
