"""
Sparkmatch — Matching API

Endpoints for the match lifecycle (express interest, accept, like, pass),
reading match details, listing a user's visible matches, and the admin
trigger / status for the daily matching sweep.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MatchingAlreadyRunningError
from app.database import async_session_factory, get_db
from app.jobs.daily_matching_job import DailyMatchingJob
from app.schemas.match import (
    AcceptInterestResponse,
    DailyMatchingStatus,
    DailyMatchingSummary,
    ExpressInterestResponse,
    LikeResponse,
    MatchActionRequest,
    MatchDecisionRequest,
    MatchDetailsResponse,
    MatchRecordResponse,
    PassResponse,
)
from app.services.lifecycle_service import MatchLifecycleService

logger = structlog.get_logger("sparkmatch.api.matching")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_lifecycle_service: MatchLifecycleService | None = None
_daily_matching_job: DailyMatchingJob | None = None


def get_lifecycle_service() -> MatchLifecycleService:
    global _lifecycle_service
    if _lifecycle_service is None:
        _lifecycle_service = MatchLifecycleService()
    return _lifecycle_service


def get_daily_matching_job() -> DailyMatchingJob:
    global _daily_matching_job
    if _daily_matching_job is None:
        _daily_matching_job = DailyMatchingJob(async_session_factory)
    return _daily_matching_job


# ──────────────────────────────────────────────────────────────────────────────
# One-way interest
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/express-interest",
    response_model=ExpressInterestResponse,
    summary="Reveal a one-way match to the other user",
)
async def express_interest(
    body: MatchActionRequest,
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> ExpressInterestResponse:
    result = await service.express_interest(db, body.match_id, body.user_id)
    return ExpressInterestResponse(match=MatchRecordResponse.model_validate(result.record))


@router.post(
    "/accept-interest",
    response_model=AcceptInterestResponse,
    summary="Accept expressed interest and unlock chat",
)
async def accept_interest(
    body: MatchActionRequest,
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> AcceptInterestResponse:
    result = await service.accept_interest(db, body.match_id, body.user_id)
    return AcceptInterestResponse(
        match=MatchRecordResponse.model_validate(result.record),
        is_love_match=result.is_love_match,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Mutual decisions
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/like",
    response_model=LikeResponse,
    summary="Like a match (optionally as a second-chance response)",
)
async def like_match(
    body: MatchDecisionRequest,
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> LikeResponse:
    result = await service.like(
        db, body.match_id, body.user_id, is_second_chance=body.is_second_chance
    )
    return LikeResponse(
        match=MatchRecordResponse.model_validate(result.record),
        is_love_match=result.is_love_match,
        second_chance_offered=result.second_chance_offered,
    )


@router.post(
    "/pass",
    response_model=PassResponse,
    summary="Pass on a match (optionally as a second-chance response)",
)
async def pass_match(
    body: MatchDecisionRequest,
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> PassResponse:
    result = await service.pass_match(
        db, body.match_id, body.user_id, is_second_chance=body.is_second_chance
    )
    return PassResponse(
        match=MatchRecordResponse.model_validate(result.record),
        is_deleted=result.is_deleted,
        second_chance_offered=result.second_chance_offered,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/matches/{match_id}",
    response_model=MatchDetailsResponse,
    summary="Get a match and the caller's side",
)
async def get_match_details(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Caller's user id"),
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> MatchDetailsResponse:
    record, position = await service.get_match_details(db, match_id, user_id)
    return MatchDetailsResponse(
        match=MatchRecordResponse.model_validate(record),
        user_position=position,
    )


@router.get(
    "/users/{user_id}/matches",
    response_model=list[MatchRecordResponse],
    summary="List matches visible to a user",
)
async def list_user_matches(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: MatchLifecycleService = Depends(get_lifecycle_service),
) -> list[MatchRecordResponse]:
    records = await service.list_user_matches(db, user_id)
    return [MatchRecordResponse.model_validate(r) for r in records]


# ──────────────────────────────────────────────────────────────────────────────
# Daily sweep (admin)
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/run-daily",
    response_model=DailyMatchingSummary,
    status_code=status.HTTP_201_CREATED,
    summary="Run the daily matching sweep now",
)
async def run_daily_matching(
    job: DailyMatchingJob = Depends(get_daily_matching_job),
) -> DailyMatchingSummary:
    logger.info("manual_daily_matching_requested")
    summary = await job.run()
    if summary is None:
        raise MatchingAlreadyRunningError()
    return summary


@router.get(
    "/run-daily/status",
    response_model=DailyMatchingStatus,
    summary="Status of the daily matching sweep",
)
async def daily_matching_status(
    job: DailyMatchingJob = Depends(get_daily_matching_job),
) -> DailyMatchingStatus:
    return job.status()
