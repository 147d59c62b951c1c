"""
Sparkmatch — Match lifecycle transitions.

Every user action on a match record is a pure function of the record's
current state, the acting user and the write time.  A function either
raises an ``AppException`` describing the violated precondition or returns
a ``Transition``: the column changes to write plus the outcome flags and the
lifecycle event to emit.  An empty ``changes`` dict means the action was
already applied (idempotent retry) and nothing must be written.

One-way interest records::

    pending ──express_interest──▶ interest expressed ──accept_interest──▶ love
       │                                 │
       └──pass (side 1)──▶ rejected      └──pass (side 2)──▶ rejected

Mutual algorithm records::

    pending ──like/pass──▶ single-sided ──like/pass──▶ love | rejected
                                                 └──▶ second chance offered
    second chance ──like(is_second_chance)──▶ love
                  └─pass(is_second_chance)──▶ rejected
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.core.exceptions import (
    AlreadyExpressedError,
    ConflictError,
    ForbiddenError,
    InvalidMatchTypeError,
    MatchNotFoundError,
    NoInterestToAcceptError,
)
from app.models.match import (
    DeletedReason,
    MatchStatus,
    MatchType,
    SecondChanceResponse,
    SideAction,
)


class LifecycleEvent:
    STATUS_CHANGE = "status_change"
    LOVE_MATCH = "love_match"
    SECOND_CHANCE = "second_chance"
    MATCH_REMOVED = "match_removed"


@dataclass(frozen=True)
class MatchState:
    """Snapshot of the columns the transitions depend on."""

    id: uuid.UUID
    match_type: str
    user1_id: uuid.UUID
    user2_id: uuid.UUID
    match_status: str = MatchStatus.PENDING
    user1_action: str | None = None
    user2_action: str | None = None
    user1_second_chance_offered: bool = False
    user2_second_chance_offered: bool = False
    user1_expressed_interest: bool = False
    visible_to_user1: bool = True
    visible_to_user2: bool = False

    @classmethod
    def from_record(cls, record: Any) -> MatchState:
        return cls(
            id=record.id,
            match_type=record.match_type,
            user1_id=record.user1_id,
            user2_id=record.user2_id,
            match_status=record.match_status,
            user1_action=record.user1_action,
            user2_action=record.user2_action,
            user1_second_chance_offered=record.user1_second_chance_offered,
            user2_second_chance_offered=record.user2_second_chance_offered,
            user1_expressed_interest=record.user1_expressed_interest,
            visible_to_user1=record.visible_to_user1,
            visible_to_user2=record.visible_to_user2,
        )

    def side_of(self, user_id: uuid.UUID) -> int | None:
        if user_id == self.user1_id:
            return 1
        if user_id == self.user2_id:
            return 2
        return None

    def action(self, side: int) -> str | None:
        return getattr(self, f"user{side}_action")

    def second_chance_offered(self, side: int) -> bool:
        return getattr(self, f"user{side}_second_chance_offered")

    def visible_to(self, side: int) -> bool:
        return getattr(self, f"visible_to_user{side}")


@dataclass(frozen=True)
class Transition:
    changes: dict[str, Any] = field(default_factory=dict)
    event: str | None = None
    is_love_match: bool = False
    second_chance_offered: bool = False
    is_deleted: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.changes


def _other(side: int) -> int:
    return 2 if side == 1 else 1


def _notify(*sides: int) -> dict[str, Any]:
    # A new pending event re-arms delivery for that side
    changes: dict[str, Any] = {}
    for side in sides:
        changes[f"notification_pending_user{side}"] = True
        changes[f"notification_sent_user{side}"] = False
    return changes


def _record_action(side: int, action: str, now: datetime) -> dict[str, Any]:
    return {f"user{side}_action": action, f"user{side}_action_at": now}


def _unlock_love(now: datetime) -> dict[str, Any]:
    return {
        "match_status": MatchStatus.LOVE,
        "chat_unlocked": True,
        "moved_to_love_at": now,
        **_notify(1, 2),
    }


def _remove(reason: str, now: datetime) -> dict[str, Any]:
    return {
        "match_status": MatchStatus.REJECTED,
        "chat_unlocked": False,
        "visible_to_user1": False,
        "visible_to_user2": False,
        "deleted_at": now,
        "deleted_reason": reason,
    }


def _require_type(state: MatchState, expected: str) -> None:
    if state.match_type != expected:
        raise InvalidMatchTypeError(expected=expected, actual=state.match_type)


def _require_side(state: MatchState, user_id: uuid.UUID) -> int:
    side = state.side_of(user_id)
    if side is None:
        raise ForbiddenError()
    return side


def _require_visible(state: MatchState, side: int) -> None:
    if not state.visible_to(side):
        raise MatchNotFoundError(state.id)


# ──────────────────────────────────────────────────────────────────────────────
# One-way interest
# ──────────────────────────────────────────────────────────────────────────────

def express_interest(state: MatchState, user_id: uuid.UUID, now: datetime) -> Transition:
    """Side 1 reveals the one-way match to side 2."""
    _require_type(state, MatchType.ONE_WAY)
    if state.side_of(user_id) != 1:
        raise ForbiddenError("Only the proposed user can express interest")
    _require_visible(state, 1)
    if state.user1_expressed_interest:
        raise AlreadyExpressedError()

    return Transition(
        changes={
            "user1_expressed_interest": True,
            "visible_to_user2": True,
            "user2_notified_of_interest": True,
            "interest_expressed_at": now,
            **_notify(2),
        },
        event=LifecycleEvent.STATUS_CHANGE,
    )


def accept_interest(state: MatchState, user_id: uuid.UUID, now: datetime) -> Transition:
    """Side 2 accepts expressed interest, which always unlocks love."""
    _require_type(state, MatchType.ONE_WAY)
    if state.side_of(user_id) != 2:
        raise ForbiddenError("Only the receiving user can accept interest")
    if not state.user1_expressed_interest:
        raise NoInterestToAcceptError()
    if state.match_status == MatchStatus.LOVE:
        return Transition(is_love_match=True)
    _require_visible(state, 2)

    return Transition(
        changes={
            **_record_action(2, SideAction.LIKE, now),
            "interest_responded_at": now,
            **_unlock_love(now),
        },
        event=LifecycleEvent.LOVE_MATCH,
        is_love_match=True,
    )


def _pass_one_way(state: MatchState, side: int, now: datetime) -> Transition:
    if side == 1:
        if state.user1_expressed_interest:
            raise AlreadyExpressedError("Interest already expressed, wait for a response")
        changes = {
            **_record_action(1, SideAction.PASS, now),
            **_remove(DeletedReason.INTEREST_NOT_EXPRESSED, now),
        }
    else:
        changes = {
            **_record_action(2, SideAction.PASS, now),
            "interest_responded_at": now,
            **_remove(DeletedReason.INTEREST_DECLINED, now),
        }
    return Transition(changes=changes, event=LifecycleEvent.MATCH_REMOVED, is_deleted=True)


# ──────────────────────────────────────────────────────────────────────────────
# Mutual algorithm
# ──────────────────────────────────────────────────────────────────────────────

def like(
    state: MatchState,
    user_id: uuid.UUID,
    now: datetime,
    is_second_chance: bool = False,
) -> Transition:
    """Record a like on a mutual match.

    A second-chance like always unlocks love.  Otherwise the outcome depends
    on the other side: like → love, pass → the other side is offered a
    second chance, nothing yet → still pending.
    """
    _require_type(state, MatchType.MUTUAL)
    side = _require_side(state, user_id)
    other = _other(side)
    if state.match_status == MatchStatus.LOVE:
        return Transition(is_love_match=True)
    _require_visible(state, side)

    if is_second_chance:
        if not state.second_chance_offered(side):
            raise ConflictError("No second chance has been offered")
        return Transition(
            changes={
                f"user{side}_second_chance_response": SecondChanceResponse.LIKE,
                **_record_action(side, SideAction.LIKE, now),
                **_unlock_love(now),
            },
            event=LifecycleEvent.LOVE_MATCH,
            is_love_match=True,
        )

    current = state.action(side)
    if current == SideAction.LIKE:
        return Transition(second_chance_offered=state.second_chance_offered(other))
    if current == SideAction.PASS:
        raise ConflictError("Pass already recorded, respond to the second chance instead")

    changes = {**_record_action(side, SideAction.LIKE, now), **_notify(other)}
    other_action = state.action(other)

    if other_action == SideAction.LIKE:
        changes.update(_unlock_love(now))
        return Transition(changes=changes, event=LifecycleEvent.LOVE_MATCH, is_love_match=True)

    if other_action == SideAction.PASS:
        changes[f"user{other}_second_chance_offered"] = True
        return Transition(
            changes=changes,
            event=LifecycleEvent.SECOND_CHANCE,
            second_chance_offered=True,
        )

    return Transition(changes=changes, event=LifecycleEvent.STATUS_CHANGE)


def pass_match(
    state: MatchState,
    user_id: uuid.UUID,
    now: datetime,
    is_second_chance: bool = False,
) -> Transition:
    """Record a pass.  ``is_second_chance`` only applies to mutual matches."""
    side = _require_side(state, user_id)
    if state.match_status == MatchStatus.REJECTED:
        return Transition(is_deleted=True)
    if state.match_status == MatchStatus.LOVE:
        raise ConflictError("Chat is already unlocked for this match")
    _require_visible(state, side)

    if state.match_type == MatchType.ONE_WAY:
        return _pass_one_way(state, side, now)

    other = _other(side)

    if is_second_chance:
        if not state.second_chance_offered(side):
            raise ConflictError("No second chance has been offered")
        return Transition(
            changes={
                f"user{side}_second_chance_response": SecondChanceResponse.STILL_PASS,
                **_record_action(side, SideAction.PASS, now),
                **_remove(DeletedReason.SECOND_CHANCE_REJECTED, now),
            },
            event=LifecycleEvent.MATCH_REMOVED,
            is_deleted=True,
        )

    current = state.action(side)
    if current == SideAction.PASS:
        return Transition(second_chance_offered=state.second_chance_offered(side))
    if current == SideAction.LIKE:
        raise ConflictError("Like already recorded for this match")

    changes = _record_action(side, SideAction.PASS, now)
    other_action = state.action(other)

    if other_action == SideAction.PASS:
        changes.update(_remove(DeletedReason.BOTH_PASSED, now))
        return Transition(changes=changes, event=LifecycleEvent.MATCH_REMOVED, is_deleted=True)

    if other_action == SideAction.LIKE:
        changes[f"user{side}_second_chance_offered"] = True
        return Transition(
            changes=changes,
            event=LifecycleEvent.SECOND_CHANCE,
            second_chance_offered=True,
        )

    return Transition(changes=changes, event=LifecycleEvent.STATUS_CHANGE)


def user_position(state: MatchState, user_id: uuid.UUID) -> str:
    """Side label for read access; hidden records look absent."""
    side = _require_side(state, user_id)
    _require_visible(state, side)
    return f"user{side}"
