"""
Sparkmatch — MatchRecord model.

One row per unordered user pair.  Rows are inserted by the daily batch
resolver and afterwards only updated in place by the lifecycle engine;
"deletion" is logical (``match_status = 'rejected'`` plus both visibility
flags cleared).
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class MatchType:
    ONE_WAY = "one_way_interest"
    MUTUAL = "mutual_algorithm"


class MatchStatus:
    PENDING = "pending"
    LOVE = "love"
    REJECTED = "rejected"


class SideAction:
    LIKE = "like"
    PASS = "pass"


class SecondChanceResponse:
    LIKE = "like"
    STILL_PASS = "still_pass"


class DeletedReason:
    INTEREST_NOT_EXPRESSED = "interest_not_expressed"
    INTEREST_DECLINED = "interest_declined"
    BOTH_PASSED = "both_passed"
    SECOND_CHANCE_REJECTED = "second_chance_rejected"


def pair_key(user_a_id, user_b_id) -> str:
    """Deterministic key for an unordered user pair."""
    return "_".join(sorted((str(user_a_id), str(user_b_id))))


class MatchRecord(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_match_pair_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    pair_key: Mapped[str] = mapped_column(String, nullable=False)
    user1_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user2_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    match_type: Mapped[str] = mapped_column(
        String, nullable=False, comment="one_way_interest / mutual_algorithm"
    )

    # ── Scoring ────────────────────────────────────────────────────
    user1_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user1_algorithm: Mapped[str | None] = mapped_column(String, nullable=True)
    user1_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    user2_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user2_algorithm: Mapped[str | None] = mapped_column(String, nullable=True)
    user2_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    combined_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # ── Per-side actions ───────────────────────────────────────────
    user1_action: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="like / pass"
    )
    user1_action_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    user2_action: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="like / pass"
    )
    user2_action_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    user1_second_chance_offered: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    user1_second_chance_response: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="like / still_pass"
    )
    user2_second_chance_offered: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    user2_second_chance_response: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="like / still_pass"
    )

    # ── One-way interest ───────────────────────────────────────────
    user1_expressed_interest: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    user2_notified_of_interest: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # ── Derived status & visibility ────────────────────────────────
    match_status: Mapped[str] = mapped_column(
        String, default="pending", nullable=False, comment="pending / love / rejected"
    )
    chat_unlocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    visible_to_user1: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    visible_to_user2: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # ── Audit ──────────────────────────────────────────────────────
    last_action_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_action_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_interactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Optimistic concurrency token"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )
    interest_expressed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    interest_responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    moved_to_love_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_reason: Mapped[str | None] = mapped_column(String, nullable=True)

    # ── Notification bookkeeping ───────────────────────────────────
    notification_pending_user1: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    notification_sent_user1: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    notification_pending_user2: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    notification_sent_user2: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<MatchRecord {self.user1_id} <-> {self.user2_id} "
            f"type={self.match_type!r} status={self.match_status!r}>"
        )
