"""Shared pytest fixtures for Sparkmatch tests."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.database import Base
from app.models.match import MatchRecord, MatchStatus, MatchType, pair_key
from app.models.user import User
from app.schemas.user import CandidateProfile
from app.services.lifecycle_service import MatchLifecycleService
from app.services.notification_service import NotificationService

# ── Sample data ────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_traits_a():
    return {
        "openness": 80,
        "conscientiousness": 60,
        "extraversion": 75,
        "agreeableness": 70,
        "neuroticism": 25,
    }


@pytest.fixture
def sample_traits_b():
    return {
        "openness": 70,
        "conscientiousness": 50,
        "extraversion": 20,
        "agreeableness": 60,
        "neuroticism": 80,
    }


def _make_profile(**overrides) -> CandidateProfile:
    """A CandidateProfile with neutral defaults."""
    traits = overrides.pop("traits", None)
    relationship_style = overrides.pop("relationship_style", None)
    compatibility_factors = overrides.pop("compatibility_factors", None)
    personality = None
    if traits is not None or relationship_style is not None or compatibility_factors is not None:
        personality = {
            "personality_score": traits,
            "relationship_style": relationship_style,
            "compatibility_factors": compatibility_factors,
        }
    data = {
        "id": uuid.uuid4(),
        "gender": "female",
        "interested_in": "everyone",
        "looking_for": "dating",
        "personality": personality,
    }
    data.update(overrides)
    return CandidateProfile.model_validate(data)


# ── Database ───────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


_user_counter = 0


async def _create_user(session: AsyncSession, **overrides) -> User:
    """Insert an active, analysed user."""
    global _user_counter
    _user_counter += 1
    data = {
        "id": uuid.uuid4(),
        "email": f"user{_user_counter}@example.com",
        "display_name": f"User {_user_counter}",
        "age": 28,
        "gender": "female",
        "interested_in": "everyone",
        "looking_for": "dating",
        "city": "Pune",
        "is_active": True,
        "is_analysis_complete": True,
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=_user_counter),
    }
    data.update(overrides)
    user = User(**data)
    session.add(user)
    await session.commit()
    return user


async def _create_match(
    session: AsyncSession,
    user1: User,
    user2: User,
    match_type: str = MatchType.MUTUAL,
    created_at: datetime | None = None,
    **overrides,
) -> MatchRecord:
    """Insert a fresh pending record between two users."""
    data = {
        "id": uuid.uuid4(),
        "pair_key": pair_key(user1.id, user2.id),
        "user1_id": user1.id,
        "user2_id": user2.id,
        "match_type": match_type,
        "user1_score": 80,
        "user1_algorithm": "similarity",
        "user1_reason": "High personality and lifestyle compatibility",
        "match_status": MatchStatus.PENDING,
        "visible_to_user1": True,
        "visible_to_user2": match_type == MatchType.MUTUAL,
        "created_at": created_at or datetime(2025, 5, 1, tzinfo=timezone.utc),
    }
    if match_type == MatchType.MUTUAL:
        data.update(user2_score=70, user2_algorithm="similarity", combined_score=75)
    data.update(overrides)
    record = MatchRecord(**data)
    session.add(record)
    await session.commit()
    return record


@pytest_asyncio.fixture
async def user_pair(db_session):
    return (
        await _create_user(db_session, gender="male", interested_in="women"),
        await _create_user(db_session, gender="female", interested_in="men"),
    )


@pytest_asyncio.fixture
async def mutual_match(db_session, user_pair):
    return await _create_match(db_session, *user_pair, match_type=MatchType.MUTUAL)


@pytest_asyncio.fixture
async def one_way_match(db_session, user_pair):
    return await _create_match(db_session, *user_pair, match_type=MatchType.ONE_WAY)


# ── Redis / services ───────────────────────────────────────────────────────────

@pytest.fixture
def fake_redis():
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    redis.pipeline.return_value = pipe
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def notification_service(fake_redis):
    service = NotificationService(redis_getter=lambda: fake_redis)
    service.grace_seconds = 0
    return service


@pytest.fixture
def lifecycle_service(notification_service):
    return MatchLifecycleService(notification_service=notification_service)


# ── Factories ──────────────────────────────────────────────────────────────────

@pytest.fixture
def profile_factory():
    return _make_profile


@pytest.fixture
def user_factory(db_session):
    async def factory(**overrides) -> User:
        return await _create_user(db_session, **overrides)
    return factory


@pytest.fixture
def match_factory(db_session):
    async def factory(user1: User, user2: User, **kwargs) -> MatchRecord:
        return await _create_match(db_session, user1, user2, **kwargs)
    return factory
