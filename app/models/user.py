"""
Sparkmatch — User model.

Owned by the profile service; the matching core only reads it.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    interested_in: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Seeking preference, e.g. Men / Women / Everyone"
    )
    looking_for: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="friendship / dating / both"
    )
    relationship_status: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)

    # Matching strategy preference; the first true flag wins
    similarity_matching: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    complementary_matching: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    multi_dimensional_matching: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    deal_breaker_filtering: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    personality_analysis: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        comment="personality_score / relationship_style / compatibility_factors",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    is_analysis_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"
