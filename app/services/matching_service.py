"""
Sparkmatch — Daily batch match resolver.

One sweep over every active, analysis-complete user:

  1. Remaining slots = DAILY_MATCH_LIMIT − records created today with the user.
  2. Compatibility filter against the user's full match history.
  3. Score survivors with the user's algorithm, keep score ≥ threshold,
     sort descending, truncate to the remaining slots.
  4. Tag every proposal with its pair key.

Once all users are processed, proposals are grouped by pair key:

  two proposals (each side chose the other) → ``mutual_algorithm`` record,
      combined_score = round(mean of both scores)
  one proposal                              → ``one_way_interest`` record,
      only side 1 populated, hidden from side 2

All new records are inserted in a single transaction.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import ConflictError, UnavailableError
from app.models.match import MatchRecord, MatchStatus, MatchType, pair_key
from app.schemas.match import DailyMatchingSummary, NewMatchDigest
from app.schemas.user import CandidateProfile
from app.services import match_repository
from app.services.compatibility_filter import find_candidates
from app.services.scoring_service import ScoredCandidate, ScoringService

logger = structlog.get_logger("sparkmatch.matching_service")


@dataclass(frozen=True)
class MatchProposal:
    proposer_id: uuid.UUID
    candidate_id: uuid.UUID
    score: int
    algorithm: str
    reason: str

    @property
    def pair_key(self) -> str:
        return pair_key(self.proposer_id, self.candidate_id)


@dataclass
class DailyMatchingResult:
    summary: DailyMatchingSummary
    records: list[MatchRecord] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def build_match_record(
    proposals: Sequence[MatchProposal], created_at: datetime
) -> MatchRecord:
    """Turn one reconciled proposal group into a fresh record."""
    first = proposals[0]
    is_mutual = len(proposals) == 2

    record = MatchRecord(
        id=uuid.uuid4(),
        pair_key=first.pair_key,
        user1_id=first.proposer_id,
        user2_id=first.candidate_id,
        match_type=MatchType.MUTUAL if is_mutual else MatchType.ONE_WAY,
        user1_score=first.score,
        user1_algorithm=first.algorithm,
        user1_reason=first.reason,
        combined_score=first.score,
        match_status=MatchStatus.PENDING,
        chat_unlocked=False,
        user1_action=None,
        user2_action=None,
        user1_second_chance_offered=False,
        user2_second_chance_offered=False,
        user1_expressed_interest=False,
        user2_notified_of_interest=False,
        visible_to_user1=True,
        visible_to_user2=is_mutual,
        total_interactions=0,
        version=0,
        notification_pending_user1=False,
        notification_sent_user1=False,
        notification_pending_user2=False,
        notification_sent_user2=False,
        created_at=created_at,
    )

    if is_mutual:
        second = proposals[1]
        record.user2_score = second.score
        record.user2_algorithm = second.algorithm
        record.user2_reason = second.reason
        record.combined_score = _round_half_up((first.score + second.score) / 2)

    return record


def reconcile_proposals(
    proposals: Iterable[MatchProposal],
) -> list[list[MatchProposal]]:
    """Group proposals by pair key, preserving first-proposal order."""
    groups: dict[str, list[MatchProposal]] = {}
    for proposal in proposals:
        groups.setdefault(proposal.pair_key, []).append(proposal)

    for key, group in groups.items():
        # Each user proposes a given candidate at most once per sweep
        if len(group) > 2:
            raise ValueError(f"Pair {key} proposed {len(group)} times")
    return list(groups.values())


def summarize_new_matches(records: Iterable[MatchRecord]) -> list[NewMatchDigest]:
    """Per-user count of new mutual matches for the push collaborator.

    One-way records are left out: side 2 cannot see them yet.
    """
    counts: Counter[uuid.UUID] = Counter()
    for record in records:
        if record.match_type == MatchType.MUTUAL:
            counts[record.user1_id] += 1
            counts[record.user2_id] += 1
    return [NewMatchDigest(user_id=uid, new_matches=n) for uid, n in counts.items()]


class MatchingService:
    """Runs the daily sweep.

    Dependencies are injected at construction so that the service can be
    tested with mocks.
    """

    def __init__(self, scoring_service: ScoringService | None = None) -> None:
        settings = get_settings()
        self.daily_match_limit: int = settings.DAILY_MATCH_LIMIT
        self.score_threshold: int = settings.MATCH_SCORE_THRESHOLD
        self.zone = settings.matching_zone
        self.persistence_timeout: float = settings.PERSISTENCE_TIMEOUT_SECONDS
        self.scoring_service = scoring_service or ScoringService()

        logger.info(
            "matching_service_initialised",
            daily_match_limit=self.daily_match_limit,
            score_threshold=self.score_threshold,
            timezone=str(self.zone),
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def run_daily_matching(
        self,
        db_session: AsyncSession,
        now: datetime | None = None,
    ) -> DailyMatchingResult:
        """Execute one full sweep and persist the new records atomically.

        Parameters
        ----------
        db_session:
            Active SQLAlchemy async session.
        now:
            Sweep time (UTC); defaults to the current time.

        Returns
        -------
        DailyMatchingResult
            Summary counts plus the inserted records.

        Raises
        ------
        ConflictError
            A new record collided with an existing pair.
        UnavailableError
            The database could not be reached or timed out.
        """
        now = now or datetime.now(timezone.utc)
        started = time.perf_counter()
        log = logger.bind(run_at=now.isoformat())
        log.info("daily_matching_start")

        try:
            users = await match_repository.get_active_users(db_session)
            history = await match_repository.get_match_history_index(db_session)
            created_today = await match_repository.count_matches_created_since(
                db_session, self.start_of_day(now)
            )
        except OperationalError as exc:
            raise UnavailableError("Could not load the matching pool") from exc

        pool: list[CandidateProfile] = []
        failed = 0
        for user in users:
            # A malformed personality payload drops that user from the sweep
            try:
                pool.append(CandidateProfile.from_user(user))
            except Exception:
                failed += 1
                log.exception("user_matching_failed", user_id=str(user.id))
        log.info("matching_pool_loaded", users=len(pool), skipped=failed)

        proposals: list[MatchProposal] = []
        for user in pool:
            try:
                proposals.extend(
                    self.propose_for_user(
                        user,
                        pool,
                        history.get(user.id, []),
                        created_today.get(user.id, 0),
                    )
                )
            except Exception:
                failed += 1
                log.exception("user_matching_failed", user_id=str(user.id))

        groups = reconcile_proposals(proposals)
        records = [build_match_record(group, created_at=now) for group in groups]
        await self._persist(db_session, records)

        mutual = sum(1 for r in records if r.match_type == MatchType.MUTUAL)
        summary = DailyMatchingSummary(
            users_processed=len(users),
            users_failed=failed,
            matches_created=len(records),
            mutual_count=mutual,
            one_way_count=len(records) - mutual,
            duration_seconds=round(time.perf_counter() - started, 3),
            new_match_ids=[r.id for r in records],
            digest=summarize_new_matches(records),
        )
        log.info(
            "daily_matching_complete",
            users_processed=summary.users_processed,
            users_failed=summary.users_failed,
            matches_created=summary.matches_created,
            mutual=summary.mutual_count,
            one_way=summary.one_way_count,
            duration_s=summary.duration_seconds,
        )
        return DailyMatchingResult(summary=summary, records=records)

    def propose_for_user(
        self,
        user: CandidateProfile,
        pool: Sequence[CandidateProfile],
        history: Sequence,
        created_today: int,
    ) -> list[MatchProposal]:
        """Top-N proposals for a single user (pure, no I/O)."""
        remaining = self.daily_match_limit - created_today
        if remaining <= 0:
            logger.debug("daily_limit_reached", user_id=str(user.id))
            return []

        candidates = find_candidates(user, pool, history)
        if not candidates:
            return []

        scored = self.scoring_service.score_candidates(user, candidates)
        accepted: list[ScoredCandidate] = sorted(
            (s for s in scored if s.score >= self.score_threshold),
            key=lambda s: s.score,
            reverse=True,
        )[:remaining]

        return [
            MatchProposal(
                proposer_id=user.id,
                candidate_id=s.candidate_id,
                score=s.score,
                algorithm=s.algorithm.value,
                reason=s.reason,
            )
            for s in accepted
        ]

    def start_of_day(self, now: datetime) -> datetime:
        """Midnight of ``now``'s calendar day in the matching timezone, as UTC."""
        local = now.astimezone(self.zone)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _persist(self, db_session: AsyncSession, records: list[MatchRecord]) -> None:
        try:
            await asyncio.wait_for(
                match_repository.insert_matches(db_session, records),
                timeout=self.persistence_timeout,
            )
        except IntegrityError as exc:
            logger.error("daily_matching_insert_conflict", error=str(exc.orig))
            raise ConflictError("A match already exists for one of the new pairs") from exc
        except (OperationalError, asyncio.TimeoutError) as exc:
            logger.error("daily_matching_insert_unavailable", error=str(exc))
            raise UnavailableError("Could not persist the new matches") from exc
