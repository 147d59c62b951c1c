"""Initial schema — users and matches.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _flag(name: str, default: str = "false") -> sa.Column:
    return sa.Column(name, sa.Boolean, server_default=default, nullable=False)


def upgrade() -> None:
    # ── 1. users (owned by the profile service) ─────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String, unique=True, index=True, nullable=False),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("age", sa.Integer, nullable=True),
        sa.Column("gender", sa.String, nullable=True),
        sa.Column("interested_in", sa.String, nullable=True),
        sa.Column("looking_for", sa.String, nullable=True),
        sa.Column("relationship_status", sa.String, nullable=True),
        sa.Column("city", sa.String, nullable=True),
        _flag("similarity_matching"),
        _flag("complementary_matching"),
        _flag("multi_dimensional_matching"),
        _flag("deal_breaker_filtering"),
        sa.Column(
            "personality_analysis",
            postgresql.JSONB,
            nullable=True,
            comment="personality_score / relationship_style / compatibility_factors",
        ),
        _flag("is_active", "true"),
        _flag("is_analysis_complete"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 2. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("pair_key", sa.String, nullable=False),
        sa.Column(
            "user1_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user2_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("match_type", sa.String, nullable=False),
        sa.Column("user1_score", sa.Integer, nullable=True),
        sa.Column("user1_algorithm", sa.String, nullable=True),
        sa.Column("user1_reason", sa.String, nullable=True),
        sa.Column("user2_score", sa.Integer, nullable=True),
        sa.Column("user2_algorithm", sa.String, nullable=True),
        sa.Column("user2_reason", sa.String, nullable=True),
        sa.Column("combined_score", sa.Float, nullable=True),
        sa.Column("user1_action", sa.String, nullable=True),
        sa.Column("user1_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user2_action", sa.String, nullable=True),
        sa.Column("user2_action_at", sa.DateTime(timezone=True), nullable=True),
        _flag("user1_second_chance_offered"),
        sa.Column("user1_second_chance_response", sa.String, nullable=True),
        _flag("user2_second_chance_offered"),
        sa.Column("user2_second_chance_response", sa.String, nullable=True),
        _flag("user1_expressed_interest"),
        _flag("user2_notified_of_interest"),
        sa.Column(
            "match_status", sa.String, server_default="pending", nullable=False
        ),
        _flag("chat_unlocked"),
        _flag("visible_to_user1", "true"),
        _flag("visible_to_user2"),
        sa.Column("last_action_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("last_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_interactions", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "version",
            sa.Integer,
            server_default="0",
            nullable=False,
            comment="Optimistic concurrency token",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("interest_expressed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("interest_responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("moved_to_love_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_reason", sa.String, nullable=True),
        _flag("notification_pending_user1"),
        _flag("notification_sent_user1"),
        _flag("notification_pending_user2"),
        _flag("notification_sent_user2"),
        sa.UniqueConstraint("pair_key", name="uq_match_pair_key"),
    )
    op.create_index("ix_matches_user1_id", "matches", ["user1_id"])
    op.create_index("ix_matches_user2_id", "matches", ["user2_id"])
    op.create_index("ix_matches_created_at", "matches", ["created_at"])


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_matches_created_at", table_name="matches")
    op.drop_index("ix_matches_user2_id", table_name="matches")
    op.drop_index("ix_matches_user1_id", table_name="matches")
    op.drop_table("matches")
    op.drop_table("users")
