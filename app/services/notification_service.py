"""
Sparkmatch — Match notification emitter.

Translates lifecycle transitions into:

* a privacy-safe real-time update written to the Redis hash
  ``{prefix}:{user_id}`` (field = match id) for both participants and
  published on the same key as a pub/sub channel;
* delayed retraction of those entries once a record is removed;
* the pending-notification hand-off consumed by the batch email/push
  notifier (collect pending sides, then mark them sent).

Real-time delivery is fire-and-forget: every failure is logged here and
never reaches the lifecycle operation that triggered it.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.match import MatchRecord
from app.schemas.match import PendingNotification
from app.services import match_repository
from app.utils.redis_client import get_redis

logger = structlog.get_logger("sparkmatch.notification_service")

# Only these columns ever leave the core through the real-time channel
_PUBLIC_MATCH_FIELDS: tuple[str, ...] = (
    "match_type",
    "user1_action",
    "user2_action",
    "chat_unlocked",
    "match_status",
    "user1_second_chance_offered",
    "user2_second_chance_offered",
)


def build_match_update(
    record: MatchRecord, event: str, now: datetime | None = None
) -> dict[str, Any]:
    """Project a post-update record onto the real-time payload."""
    now = now or datetime.now(timezone.utc)
    return {
        "match_id": str(record.id),
        "update_type": event,
        "new_status": record.match_status,
        "chat_unlocked": record.chat_unlocked,
        "timestamp": int(now.timestamp() * 1000),
        "match": {name: getattr(record, name) for name in _PUBLIC_MATCH_FIELDS},
    }


class NotificationService:
    """Fan-out of lifecycle events to the real-time channel."""

    def __init__(self, redis_getter: Callable[[], Any] = get_redis) -> None:
        settings = get_settings()
        self.key_prefix: str = settings.REALTIME_KEY_PREFIX
        self.grace_seconds: float = settings.MATCH_REMOVAL_GRACE_SECONDS
        self.publish_timeout: float = settings.REALTIME_PUBLISH_TIMEOUT_SECONDS
        self._redis_getter = redis_getter
        self._retractions: set[asyncio.Task] = set()

    def user_key(self, user_id: uuid.UUID | str) -> str:
        return f"{self.key_prefix}:{user_id}"

    # ── Real-time fan-out ─────────────────────────────────────────────────

    async def publish_match_update(self, record: MatchRecord, event: str) -> bool:
        """Write the update for both users.  Returns ``False`` on failure."""
        log = logger.bind(match_id=str(record.id), update_type=event)

        try:
            redis = self._redis_getter()
            if redis is None:
                log.warning("match_update_skipped", reason="redis not connected")
                return False

            payload = json.dumps(build_match_update(record, event))
            pipe = redis.pipeline(transaction=True)
            for user_id in (record.user1_id, record.user2_id):
                key = self.user_key(user_id)
                pipe.hset(key, str(record.id), payload)
                pipe.publish(key, payload)
            await asyncio.wait_for(pipe.execute(), timeout=self.publish_timeout)
        except Exception:
            log.exception("match_update_publish_failed")
            return False

        log.info("match_update_published")
        return True

    def schedule_retraction(
        self, match_id: uuid.UUID, user_ids: tuple[uuid.UUID, uuid.UUID]
    ) -> asyncio.Task:
        """Remove the fan-out entries after the grace delay."""
        task = asyncio.create_task(self._retract_after_delay(match_id, user_ids))
        self._retractions.add(task)
        task.add_done_callback(self._retractions.discard)
        return task

    async def _retract_after_delay(
        self, match_id: uuid.UUID, user_ids: tuple[uuid.UUID, uuid.UUID]
    ) -> None:
        await asyncio.sleep(self.grace_seconds)

        redis = self._redis_getter()
        if redis is None:
            logger.warning("match_update_retraction_skipped", match_id=str(match_id))
            return
        try:
            pipe = redis.pipeline(transaction=True)
            for user_id in user_ids:
                pipe.hdel(self.user_key(user_id), str(match_id))
            await asyncio.wait_for(pipe.execute(), timeout=self.publish_timeout)
        except Exception:
            logger.exception("match_update_retraction_failed", match_id=str(match_id))
            return
        logger.info("match_update_retracted", match_id=str(match_id))

    async def wait_for_retractions(self) -> None:
        """Let in-flight retractions finish (used on shutdown)."""
        if self._retractions:
            await asyncio.gather(*self._retractions, return_exceptions=True)

    # ── Batch notifier hand-off ───────────────────────────────────────────

    async def collect_pending_notifications(
        self, db_session: AsyncSession
    ) -> list[PendingNotification]:
        """Group every pending, unsent side by user."""
        records = await match_repository.get_pending_notification_matches(db_session)

        by_user: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
        for record in records:
            if record.notification_pending_user1 and not record.notification_sent_user1:
                by_user[record.user1_id].append(record.id)
            if record.notification_pending_user2 and not record.notification_sent_user2:
                by_user[record.user2_id].append(record.id)

        versions = {record.id: record.version for record in records}
        pending = [
            PendingNotification(
                user_id=user_id,
                match_ids=match_ids,
                versions={match_id: versions[match_id] for match_id in match_ids},
            )
            for user_id, match_ids in by_user.items()
        ]
        logger.info(
            "pending_notifications_collected",
            users=len(pending),
            matches=len(records),
        )
        return pending

    async def mark_notifications_sent(
        self,
        db_session: AsyncSession,
        pending: list[PendingNotification],
    ) -> int:
        """Flip the delivered sides to ``sent``; returns the number of sides.

        A side is only flipped while its record is still at the version seen
        by ``collect_pending_notifications``.  Records written in between stay
        pending and are picked up by the next collection.
        """
        records = {
            r.id: r
            for r in await match_repository.get_pending_notification_matches(db_session)
        }
        sides: list[tuple[uuid.UUID, int, int]] = []
        for item in pending:
            for match_id in item.match_ids:
                record = records.get(match_id)
                expected_version = item.versions.get(match_id)
                if record is None or expected_version is None:
                    continue
                if record.user1_id == item.user_id:
                    sides.append((match_id, 1, expected_version))
                elif record.user2_id == item.user_id:
                    sides.append((match_id, 2, expected_version))

        updated = await match_repository.mark_sides_notified(db_session, sides)
        logger.info(
            "notifications_marked_sent",
            sides=updated,
            skipped=len(sides) - updated,
        )
        return updated
