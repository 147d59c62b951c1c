from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

class MatchActionRequest(BaseModel):
    match_id: UUID
    user_id: UUID

class MatchDecisionRequest(MatchActionRequest):
    is_second_chance: bool = False

class MatchRecordResponse(BaseModel):
    id: UUID
    user1_id: UUID
    user2_id: UUID
    match_type: str
    user1_score: Optional[int] = None
    user1_algorithm: Optional[str] = None
    user1_reason: Optional[str] = None
    user2_score: Optional[int] = None
    user2_algorithm: Optional[str] = None
    user2_reason: Optional[str] = None
    combined_score: Optional[float] = None
    user1_action: Optional[str] = None
    user2_action: Optional[str] = None
    user1_second_chance_offered: bool
    user1_second_chance_response: Optional[str] = None
    user2_second_chance_offered: bool
    user2_second_chance_response: Optional[str] = None
    user1_expressed_interest: bool
    user2_notified_of_interest: bool
    match_status: str
    chat_unlocked: bool
    visible_to_user1: bool
    visible_to_user2: bool
    last_action_by: Optional[UUID] = None
    last_action_at: Optional[datetime] = None
    total_interactions: int
    created_at: datetime
    interest_expressed_at: Optional[datetime] = None
    interest_responded_at: Optional[datetime] = None
    moved_to_love_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_reason: Optional[str] = None

    model_config = {"from_attributes": True}

class ExpressInterestResponse(BaseModel):
    match: MatchRecordResponse

class AcceptInterestResponse(BaseModel):
    match: MatchRecordResponse
    is_love_match: bool

class LikeResponse(BaseModel):
    match: MatchRecordResponse
    is_love_match: bool
    second_chance_offered: bool

class PassResponse(BaseModel):
    match: MatchRecordResponse
    is_deleted: bool
    second_chance_offered: bool

class MatchDetailsResponse(BaseModel):
    match: MatchRecordResponse
    user_position: Literal["user1", "user2"]

class NewMatchDigest(BaseModel):
    """Per-user count of new matches, handed to the push collaborator."""
    user_id: UUID
    new_matches: int

class DailyMatchingSummary(BaseModel):
    users_processed: int
    users_failed: int = 0
    matches_created: int
    mutual_count: int
    one_way_count: int
    duration_seconds: float
    new_match_ids: list[UUID] = []
    digest: list[NewMatchDigest] = []

class DailyMatchingStatus(BaseModel):
    is_running: bool
    last_run_at: Optional[datetime] = None
    last_summary: Optional[DailyMatchingSummary] = None
    last_error: Optional[str] = None

class PendingNotification(BaseModel):
    user_id: UUID
    match_ids: list[UUID] = Field(default_factory=list)
    # Record version seen at collection; a later write re-arms delivery
    versions: dict[UUID, int] = Field(default_factory=dict)
