"""
Sparkmatch — Daily matching job.

Wraps one ``MatchingService`` sweep for the external scheduler (daily at
00:30 UTC, i.e. 06:00 IST), the admin endpoint and the operator CLI.
Overlapping triggers within a process are skipped rather than queued.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schemas.match import DailyMatchingStatus, DailyMatchingSummary
from app.services.matching_service import MatchingService

logger = structlog.get_logger("sparkmatch.jobs.daily_matching")


class DailyMatchingJob:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        matching_service: MatchingService | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.matching_service = matching_service or MatchingService()
        self.is_running = False
        self.last_run_at: datetime | None = None
        self.last_summary: DailyMatchingSummary | None = None
        self.last_error: str | None = None

    async def run(self) -> DailyMatchingSummary | None:
        """Run one sweep; returns ``None`` when a sweep is already in progress."""
        # No await between the check and the set, so this is race-free on one loop
        if self.is_running:
            logger.warning("daily_matching_skipped", reason="already running")
            return None

        self.is_running = True
        started_at = datetime.now(timezone.utc)
        logger.info("daily_matching_job_start", started_at=started_at.isoformat())
        try:
            async with self.session_factory() as session:
                result = await self.matching_service.run_daily_matching(
                    session, now=started_at
                )
        except Exception as exc:
            self.last_error = str(exc)
            logger.exception("daily_matching_job_failed")
            raise
        finally:
            self.is_running = False
            self.last_run_at = started_at

        self.last_summary = result.summary
        self.last_error = None

        for entry in result.summary.digest:
            logger.info(
                "new_matches_ready_for_push",
                user_id=str(entry.user_id),
                new_matches=entry.new_matches,
            )
        return result.summary

    def status(self) -> DailyMatchingStatus:
        return DailyMatchingStatus(
            is_running=self.is_running,
            last_run_at=self.last_run_at,
            last_summary=self.last_summary,
            last_error=self.last_error,
        )
