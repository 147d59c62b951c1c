"""Tests for the daily matching job wrapper."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.exceptions import UnavailableError
from app.jobs.daily_matching_job import DailyMatchingJob
from app.schemas.match import DailyMatchingSummary
from app.services.matching_service import DailyMatchingResult


def _summary(**overrides):
    data = {
        "users_processed": 3,
        "matches_created": 2,
        "mutual_count": 1,
        "one_way_count": 1,
        "duration_seconds": 0.01,
    }
    data.update(overrides)
    return DailyMatchingSummary(**data)


@pytest.fixture
def matching_service():
    service = MagicMock()
    service.run_daily_matching = AsyncMock(
        return_value=DailyMatchingResult(summary=_summary())
    )
    return service


class TestDailyMatchingJob:

    @pytest.mark.asyncio
    async def test_run_records_status(self, session_factory, matching_service):
        job = DailyMatchingJob(session_factory, matching_service=matching_service)

        summary = await job.run()

        assert summary.matches_created == 2
        status = job.status()
        assert status.is_running is False
        assert status.last_run_at is not None
        assert status.last_summary == summary
        assert status.last_error is None
        _, kwargs = matching_service.run_daily_matching.call_args
        assert kwargs["now"] == status.last_run_at

    @pytest.mark.asyncio
    async def test_overlapping_trigger_is_skipped(self, session_factory, matching_service):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_sweep(session, now):
            started.set()
            await release.wait()
            return DailyMatchingResult(summary=_summary())

        matching_service.run_daily_matching = AsyncMock(side_effect=slow_sweep)
        job = DailyMatchingJob(session_factory, matching_service=matching_service)

        first = asyncio.create_task(job.run())
        await started.wait()
        assert job.status().is_running is True

        assert await job.run() is None

        release.set()
        assert (await first).matches_created == 2
        assert matching_service.run_daily_matching.await_count == 1
        assert job.is_running is False

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_raised(self, session_factory, matching_service):
        matching_service.run_daily_matching = AsyncMock(side_effect=UnavailableError("db down"))
        job = DailyMatchingJob(session_factory, matching_service=matching_service)

        with pytest.raises(UnavailableError):
            await job.run()

        status = job.status()
        assert status.is_running is False
        assert status.last_error == "db down"
        assert status.last_summary is None

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_service(self, session_factory, user_factory):
        await user_factory(gender="male", interested_in="women")
        await user_factory(gender="female", interested_in="men")
        job = DailyMatchingJob(session_factory)

        summary = await job.run()

        assert summary.users_processed == 2
        assert summary.mutual_count == 1
        assert {d.new_matches for d in summary.digest} == {1}
