"""
Sparkmatch — Match lifecycle engine.

Applies the pure transitions from ``match_transitions`` to persisted match
records.  Each operation is one optimistic read-modify-write:

  read the record → compute the transition → conditional UPDATE on the
  version read → on a lost race, re-read and re-apply (bounded attempts)

Successful writes are then fanned out through the ``NotificationService``;
fan-out failures are logged there and never fail the operation.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Sequence

import structlog
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from app.config import get_settings
from app.core.exceptions import ConflictError, MatchNotFoundError, UnavailableError
from app.models.match import MatchRecord
from app.services import match_repository
from app.services import match_transitions as transitions
from app.services.match_repository import StaleMatchStateError
from app.services.match_transitions import LifecycleEvent, MatchState, Transition
from app.services.notification_service import NotificationService

logger = structlog.get_logger("sparkmatch.lifecycle_service")

TransitionFn = Callable[[MatchState, uuid.UUID, datetime], Transition]


@dataclass
class LifecycleResult:
    record: MatchRecord
    is_love_match: bool = False
    second_chance_offered: bool = False
    is_deleted: bool = False
    event: str | None = None


class MatchLifecycleService:
    """Online state machine for match records.

    Parameters
    ----------
    notification_service:
        Emitter used after every successful write.
    """

    def __init__(self, notification_service: NotificationService | None = None) -> None:
        settings = get_settings()
        self.max_attempts: int = settings.LIFECYCLE_MAX_ATTEMPTS
        self.persistence_timeout: float = settings.PERSISTENCE_TIMEOUT_SECONDS
        self.notification_service = notification_service or NotificationService()

    # ── Public API ────────────────────────────────────────────────────────

    async def express_interest(
        self, db_session: AsyncSession, match_id: uuid.UUID, user_id: uuid.UUID
    ) -> LifecycleResult:
        return await self._apply(
            db_session, match_id, user_id, "express_interest", transitions.express_interest
        )

    async def accept_interest(
        self, db_session: AsyncSession, match_id: uuid.UUID, user_id: uuid.UUID
    ) -> LifecycleResult:
        return await self._apply(
            db_session, match_id, user_id, "accept_interest", transitions.accept_interest
        )

    async def like(
        self,
        db_session: AsyncSession,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        is_second_chance: bool = False,
    ) -> LifecycleResult:
        return await self._apply(
            db_session,
            match_id,
            user_id,
            "like",
            partial(transitions.like, is_second_chance=is_second_chance),
        )

    async def pass_match(
        self,
        db_session: AsyncSession,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        is_second_chance: bool = False,
    ) -> LifecycleResult:
        return await self._apply(
            db_session,
            match_id,
            user_id,
            "pass",
            partial(transitions.pass_match, is_second_chance=is_second_chance),
        )

    async def get_match_details(
        self, db_session: AsyncSession, match_id: uuid.UUID, user_id: uuid.UUID
    ) -> tuple[MatchRecord, str]:
        """Return the record and the caller's side label (``user1``/``user2``)."""
        record = await self._load(db_session, match_id)
        position = transitions.user_position(MatchState.from_record(record), user_id)
        return record, position

    async def list_user_matches(
        self, db_session: AsyncSession, user_id: uuid.UUID
    ) -> Sequence[MatchRecord]:
        """Records currently visible to ``user_id``, newest first."""
        try:
            return await asyncio.wait_for(
                match_repository.get_visible_matches_for_user(db_session, user_id),
                timeout=self.persistence_timeout,
            )
        except (OperationalError, asyncio.TimeoutError) as exc:
            raise UnavailableError() from exc

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _load(self, db_session: AsyncSession, match_id: uuid.UUID) -> MatchRecord:
        try:
            record = await asyncio.wait_for(
                match_repository.get_match(db_session, match_id),
                timeout=self.persistence_timeout,
            )
        except (OperationalError, asyncio.TimeoutError) as exc:
            raise UnavailableError() from exc
        if record is None:
            raise MatchNotFoundError(match_id)
        return record

    async def _apply(
        self,
        db_session: AsyncSession,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        operation: str,
        transition_fn: TransitionFn,
    ) -> LifecycleResult:
        log = logger.bind(match_id=str(match_id), user_id=str(user_id), operation=operation)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(StaleMatchStateError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_random_exponential(multiplier=0.05, max=0.5),
                reraise=True,
            ):
                with attempt:
                    record = await self._load(db_session, match_id)
                    now = datetime.now(timezone.utc)
                    outcome = transition_fn(MatchState.from_record(record), user_id, now)

                    if not outcome.is_noop:
                        record = await asyncio.wait_for(
                            match_repository.compare_and_set(
                                db_session, record, outcome.changes, user_id, now
                            ),
                            timeout=self.persistence_timeout,
                        )
        except StaleMatchStateError as exc:
            log.warning("lifecycle_conflict_exhausted", attempts=self.max_attempts)
            raise ConflictError(
                "Match was updated concurrently, please retry",
                metadata={"match_id": str(match_id)},
            ) from exc
        except (OperationalError, asyncio.TimeoutError) as exc:
            log.error("lifecycle_persistence_unavailable", error=str(exc))
            raise UnavailableError() from exc

        if outcome.is_noop:
            log.info("lifecycle_noop", match_status=record.match_status)
        else:
            log.info(
                "lifecycle_applied",
                lifecycle_event=outcome.event,
                match_status=record.match_status,
                total_interactions=record.total_interactions,
            )
            await self._emit(record, outcome)

        return LifecycleResult(
            record=record,
            is_love_match=outcome.is_love_match,
            second_chance_offered=outcome.second_chance_offered,
            is_deleted=outcome.is_deleted,
            event=outcome.event,
        )

    async def _emit(self, record: MatchRecord, outcome: Transition) -> None:
        if outcome.event is None:
            return
        await self.notification_service.publish_match_update(record, outcome.event)
        if outcome.event == LifecycleEvent.MATCH_REMOVED:
            self.notification_service.schedule_retraction(
                record.id, (record.user1_id, record.user2_id)
            )
