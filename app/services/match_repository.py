"""
Sparkmatch — Match persistence helpers.

Thin async query layer shared by the batch resolver, the lifecycle engine
and the notification hand-off.  Lifecycle writes go through
``compare_and_set`` so that two concurrent actions on the same record can
never both apply on top of the same prior state.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Sequence

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.match import MatchRecord
from app.models.user import User

logger = structlog.get_logger("sparkmatch.match_repository")


class StaleMatchStateError(Exception):
    """The record changed between read and conditional write."""

    def __init__(self, match_id: uuid.UUID, expected_version: int) -> None:
        self.match_id = match_id
        self.expected_version = expected_version
        super().__init__(
            f"Match {match_id} is no longer at version {expected_version}"
        )


# ── Reads ──────────────────────────────────────────────────────────────────────

async def get_match(db: AsyncSession, match_id: uuid.UUID) -> MatchRecord | None:
    """Load a record, always refreshing any copy already in the session."""
    stmt = (
        select(MatchRecord)
        .where(MatchRecord.id == match_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_visible_matches_for_user(
    db: AsyncSession, user_id: uuid.UUID
) -> Sequence[MatchRecord]:
    stmt = (
        select(MatchRecord)
        .where(
            or_(
                (MatchRecord.user1_id == user_id) & MatchRecord.visible_to_user1.is_(True),
                (MatchRecord.user2_id == user_id) & MatchRecord.visible_to_user2.is_(True),
            )
        )
        .order_by(MatchRecord.created_at.desc())
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_active_users(db: AsyncSession) -> Sequence[User]:
    """Active, analysis-complete users in stable pool order."""
    stmt = (
        select(User)
        .where(User.is_active.is_(True), User.is_analysis_complete.is_(True))
        .order_by(User.created_at, User.id)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_match_history_index(db: AsyncSession) -> dict[uuid.UUID, list[Row]]:
    """Every historical pair, indexed by both participants.

    Status is deliberately ignored: a rejected record still blocks the pair.
    """
    stmt = select(MatchRecord.user1_id, MatchRecord.user2_id)
    result = await db.execute(stmt)

    index: dict[uuid.UUID, list[Row]] = defaultdict(list)
    for row in result.all():
        index[row.user1_id].append(row)
        index[row.user2_id].append(row)
    return index


async def count_matches_created_since(
    db: AsyncSession, since: datetime
) -> dict[uuid.UUID, int]:
    """Per-user number of records created at or after ``since``."""
    counts: dict[uuid.UUID, int] = defaultdict(int)
    for column in (MatchRecord.user1_id, MatchRecord.user2_id):
        stmt = (
            select(column, func.count())
            .where(MatchRecord.created_at >= since)
            .group_by(column)
        )
        result = await db.execute(stmt)
        for user_id, count in result.all():
            counts[user_id] += count
    return counts


async def get_pending_notification_matches(db: AsyncSession) -> Sequence[MatchRecord]:
    stmt = select(MatchRecord).where(
        or_(
            MatchRecord.notification_pending_user1.is_(True)
            & MatchRecord.notification_sent_user1.is_(False),
            MatchRecord.notification_pending_user2.is_(True)
            & MatchRecord.notification_sent_user2.is_(False),
        )
    )
    result = await db.execute(stmt)
    return result.scalars().all()


# ── Writes ─────────────────────────────────────────────────────────────────────

async def insert_matches(db: AsyncSession, records: Sequence[MatchRecord]) -> None:
    """Insert all records in one transaction; nothing is kept on failure."""
    if not records:
        return
    try:
        db.add_all(records)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("matches_inserted", count=len(records))


async def compare_and_set(
    db: AsyncSession,
    record: MatchRecord,
    changes: dict[str, Any],
    actor_id: uuid.UUID,
    now: datetime,
) -> MatchRecord:
    """Apply ``changes`` only if the row is still at ``record.version``.

    Audit columns are stamped in the same statement.  Raises
    ``StaleMatchStateError`` when another writer got there first.
    """
    match_id = record.id
    expected_version = record.version
    stmt = (
        update(MatchRecord)
        .where(MatchRecord.id == match_id, MatchRecord.version == expected_version)
        .values(
            **changes,
            last_action_by=actor_id,
            last_action_at=now,
            total_interactions=MatchRecord.total_interactions + 1,
            version=expected_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if result.rowcount != 1:
        await db.rollback()
        raise StaleMatchStateError(match_id, expected_version)

    await db.commit()
    await db.refresh(record)
    return record


async def mark_sides_notified(
    db: AsyncSession, sides: Sequence[tuple[uuid.UUID, int, int]]
) -> int:
    """Flip ``pending -> sent`` for each ``(match_id, side, expected_version)``.

    Sides whose record moved past ``expected_version`` are left pending.
    Returns the number of sides actually flipped.
    """
    updated = 0
    for match_id, side, expected_version in sides:
        result = await db.execute(
            update(MatchRecord)
            .where(
                MatchRecord.id == match_id,
                MatchRecord.version == expected_version,
            )
            .values(
                {
                    f"notification_pending_user{side}": False,
                    f"notification_sent_user{side}": True,
                }
            )
            .execution_options(synchronize_session=False)
        )
        updated += result.rowcount
    await db.commit()
    return updated
