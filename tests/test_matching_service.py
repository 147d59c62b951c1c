"""Tests for the daily batch match resolver."""
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import ConflictError, UnavailableError
from app.models.match import MatchRecord, MatchStatus, MatchType
from app.services.matching_service import (
    MatchingService,
    MatchProposal,
    build_match_record,
    reconcile_proposals,
    summarize_new_matches,
)
from app.services.scoring_service import ScoredCandidate, ScoringAlgorithm, ScoringService

SWEEP_AT = datetime(2025, 6, 1, 0, 30, tzinfo=timezone.utc)

HIGH_TRAITS = {
    "openness": 100,
    "conscientiousness": 100,
    "extraversion": 100,
    "agreeableness": 100,
    "neuroticism": 100,
}


def _settings(**overrides):
    settings = MagicMock()
    settings.DAILY_MATCH_LIMIT = 5
    settings.MATCH_SCORE_THRESHOLD = 30
    settings.matching_zone = ZoneInfo("Asia/Kolkata")
    settings.PERSISTENCE_TIMEOUT_SECONDS = 10
    for name, value in overrides.items():
        setattr(settings, name, value)
    return settings


@pytest.fixture
def matching_service():
    with patch("app.services.matching_service.get_settings") as mock:
        mock.return_value = _settings()
        service = MatchingService()
    return service


def _proposal(proposer, candidate, score=80):
    return MatchProposal(
        proposer_id=proposer,
        candidate_id=candidate,
        score=score,
        algorithm="similarity",
        reason="High personality and lifestyle compatibility",
    )


class TestReconciliation:

    def test_groups_by_pair_key(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        groups = reconcile_proposals([_proposal(a, b), _proposal(a, c), _proposal(b, a)])

        assert [len(g) for g in groups] == [2, 1]
        assert groups[0][0].proposer_id == a
        assert groups[0][1].proposer_id == b

    def test_more_than_two_is_a_bug(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        with pytest.raises(ValueError):
            reconcile_proposals([_proposal(a, b), _proposal(b, a), _proposal(a, b)])

    def test_pair_key_is_order_independent(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert _proposal(a, b).pair_key == _proposal(b, a).pair_key


class TestBuildMatchRecord:

    def test_mutual_record(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        record = build_match_record([_proposal(a, b, 80), _proposal(b, a, 71)], SWEEP_AT)

        assert record.match_type == MatchType.MUTUAL
        assert record.user1_id == a
        assert record.user2_id == b
        assert record.user2_score == 71
        # mean 75.5 rounds half-up
        assert record.combined_score == 76
        assert record.visible_to_user1 and record.visible_to_user2
        assert record.match_status == MatchStatus.PENDING
        assert record.total_interactions == 0

    def test_one_way_record(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        record = build_match_record([_proposal(a, b, 64)], SWEEP_AT)

        assert record.match_type == MatchType.ONE_WAY
        assert record.user1_id == a
        assert record.user2_score is None
        assert record.user2_algorithm is None
        assert record.combined_score == 64
        assert record.visible_to_user1 is True
        assert record.visible_to_user2 is False
        assert record.user1_expressed_interest is False

    def test_digest_counts_mutual_only(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        records = [
            build_match_record([_proposal(a, b), _proposal(b, a)], SWEEP_AT),
            build_match_record([_proposal(a, c)], SWEEP_AT),
        ]
        digest = {d.user_id: d.new_matches for d in summarize_new_matches(records)}
        assert digest == {a: 1, b: 1}


class TestMatchingDay:

    def test_start_of_day_after_local_midnight(self, matching_service):
        now = datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc)  # 01:30 IST on 2 June
        assert matching_service.start_of_day(now) == datetime(
            2025, 6, 1, 18, 30, tzinfo=timezone.utc
        )

    def test_start_of_day_before_local_midnight(self, matching_service):
        now = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)  # 15:30 IST on 1 June
        assert matching_service.start_of_day(now) == datetime(
            2025, 5, 31, 18, 30, tzinfo=timezone.utc
        )


class TestProposeForUser:
    """Threshold, ordering and truncation with a stubbed scorer."""

    def _service(self, scores):
        scorer = MagicMock(spec=ScoringService)
        scorer.score_candidates.side_effect = lambda user, candidates: [
            ScoredCandidate(
                candidate_id=c.id,
                score=scores[i],
                algorithm=ScoringAlgorithm.SIMILARITY,
                reason="r",
            )
            for i, c in enumerate(candidates)
        ]
        with patch("app.services.matching_service.get_settings") as mock:
            mock.return_value = _settings()
            return MatchingService(scoring_service=scorer)

    def test_threshold_sort_and_truncate(self, profile_factory):
        service = self._service([40, 29, 90, 30, 55])
        user = profile_factory()
        pool = [user] + [profile_factory() for _ in range(5)]

        proposals = service.propose_for_user(user, pool, [], created_today=2)

        assert [p.score for p in proposals] == [90, 55, 40]
        assert all(p.proposer_id == user.id for p in proposals)

    def test_limit_reached(self, profile_factory):
        service = self._service([90])
        user = profile_factory()
        assert service.propose_for_user(user, [user, profile_factory()], [], created_today=5) == []
        service.scoring_service.score_candidates.assert_not_called()

    def test_threshold_is_inclusive(self, profile_factory):
        service = self._service([30])
        user = profile_factory()
        proposals = service.propose_for_user(user, [user, profile_factory()], [], created_today=0)
        assert [p.score for p in proposals] == [30]


class TestDailySweep:
    """End-to-end sweeps against the in-memory database."""

    async def _trio(self, user_factory):
        a = await user_factory(
            gender="male",
            interested_in="women",
            similarity_matching=True,
            personality_analysis={"personality_score": HIGH_TRAITS},
        )
        b = await user_factory(
            gender="female",
            interested_in="men",
            similarity_matching=True,
            personality_analysis={"personality_score": HIGH_TRAITS},
        )
        # Complementary scoring of two all-high vectors stays under the threshold
        x = await user_factory(
            gender="female",
            interested_in="men",
            complementary_matching=True,
            personality_analysis={"personality_score": HIGH_TRAITS},
        )
        return a, b, x

    @pytest.mark.asyncio
    async def test_mutual_and_one_way(self, db_session, user_factory, matching_service):
        a, b, x = await self._trio(user_factory)

        result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)
        summary = result.summary

        assert summary.users_processed == 3
        assert summary.matches_created == 2
        assert summary.mutual_count == 1
        assert summary.one_way_count == 1
        assert summary.users_failed == 0

        rows = (await db_session.execute(select(MatchRecord))).scalars().all()
        by_type = {r.match_type: r for r in rows}
        mutual = by_type[MatchType.MUTUAL]
        one_way = by_type[MatchType.ONE_WAY]

        assert {mutual.user1_id, mutual.user2_id} == {a.id, b.id}
        assert mutual.combined_score == 100
        assert (one_way.user1_id, one_way.user2_id) == (a.id, x.id)
        assert one_way.visible_to_user2 is False

        digest = {d.user_id: d.new_matches for d in summary.digest}
        assert digest == {a.id: 1, b.id: 1}

    @pytest.mark.asyncio
    async def test_second_sweep_creates_nothing(self, db_session, user_factory, matching_service):
        await self._trio(user_factory)
        await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        again = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        assert again.summary.matches_created == 0
        rows = (await db_session.execute(select(MatchRecord))).scalars().all()
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_rejected_history_blocks_pair(self, db_session, user_factory, match_factory, matching_service):
        a, b, x = await self._trio(user_factory)
        await match_factory(
            a,
            b,
            match_status=MatchStatus.REJECTED,
            visible_to_user1=False,
            visible_to_user2=False,
        )

        result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        assert result.summary.matches_created == 1
        assert result.records[0].user2_id == x.id

    @pytest.mark.asyncio
    async def test_daily_limit_counts_todays_records(
        self, db_session, user_factory, match_factory, matching_service
    ):
        a, b, _ = await self._trio(user_factory)
        for _ in range(5):
            filler = await user_factory(is_active=False)
            await match_factory(a, filler, created_at=SWEEP_AT)

        result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        # a proposes nothing; b still proposes a
        assert result.summary.matches_created == 1
        record = result.records[0]
        assert record.match_type == MatchType.ONE_WAY
        assert (record.user1_id, record.user2_id) == (b.id, a.id)

    @pytest.mark.asyncio
    async def test_inactive_and_unanalysed_users_skipped(self, db_session, user_factory, matching_service):
        await user_factory(gender="male", interested_in="women", is_active=False)
        await user_factory(gender="female", interested_in="men", is_analysis_complete=False)

        result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        assert result.summary.users_processed == 0
        assert result.summary.matches_created == 0

    @pytest.mark.asyncio
    async def test_user_failure_is_contained(self, db_session, user_factory, matching_service):
        a, b, x = await self._trio(user_factory)
        real = matching_service.scoring_service.score_candidates

        def flaky(user, candidates):
            if user.id == a.id:
                raise RuntimeError("boom")
            return real(user, candidates)

        with patch.object(matching_service.scoring_service, "score_candidates", side_effect=flaky):
            result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

        assert result.summary.users_failed == 1
        # only b's proposal survives, so the pair is one-way from b
        assert result.summary.matches_created == 1
        assert result.records[0].user1_id == b.id

    @pytest.mark.asyncio
    async def test_malformed_profile_is_skipped(self, db_session, user_factory, matching_service):
        a, b, x = await self._trio(user_factory)
        broken = await user_factory(
            gender="female",
            interested_in="men",
            personality_analysis={"compatibility_factors": {"deal_breakers": None}},
        )

        result = await matching_service.run_daily_matching(db_session, now=SWEEP_AT)
        summary = result.summary

        assert summary.users_processed == 4
        assert summary.users_failed == 1
        assert summary.mutual_count == 1
        assert summary.one_way_count == 1
        paired = {uid for r in result.records for uid in (r.user1_id, r.user2_id)}
        assert broken.id not in paired
        assert paired == {a.id, b.id, x.id}

    @pytest.mark.asyncio
    async def test_unreachable_database(self, db_session, matching_service):
        broken = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        with patch("app.services.match_repository.get_active_users", broken):
            with pytest.raises(UnavailableError):
                await matching_service.run_daily_matching(db_session, now=SWEEP_AT)

    @pytest.mark.asyncio
    async def test_insert_conflict(self, db_session, user_factory, matching_service):
        await self._trio(user_factory)
        clash = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate pair_key")))

        with patch("app.services.match_repository.insert_matches", clash):
            with pytest.raises(ConflictError):
                await matching_service.run_daily_matching(db_session, now=SWEEP_AT)
