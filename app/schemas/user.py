from pydantic import BaseModel
from uuid import UUID
from typing import Optional

TRAIT_NAMES = (
    "openness",
    "conscientiousness",
    "extraversion",
    "agreeableness",
    "neuroticism",
)

class RelationshipStyle(BaseModel):
    attachment_style: Optional[str] = None
    communication_style: Optional[str] = None

class CompatibilityFactors(BaseModel):
    deal_breakers: list[str] = []
    must_haves: list[str] = []

class PersonalityAnalysis(BaseModel):
    personality_score: Optional[dict[str, Optional[float]]] = None
    relationship_style: Optional[RelationshipStyle] = None
    compatibility_factors: Optional[CompatibilityFactors] = None

    model_config = {"extra": "ignore"}

class CandidateProfile(BaseModel):
    """Read-only view of a user as seen by the filter and the scorer."""

    id: UUID
    gender: Optional[str] = None
    interested_in: Optional[str] = None
    looking_for: Optional[str] = None
    relationship_status: Optional[str] = None
    city: Optional[str] = None
    age: Optional[int] = None
    similarity_matching: bool = False
    complementary_matching: bool = False
    multi_dimensional_matching: bool = False
    deal_breaker_filtering: bool = False
    personality: Optional[PersonalityAnalysis] = None

    model_config = {"frozen": True}

    @classmethod
    def from_user(cls, user) -> "CandidateProfile":
        analysis = user.personality_analysis
        return cls(
            id=user.id,
            gender=user.gender,
            interested_in=user.interested_in,
            looking_for=user.looking_for,
            relationship_status=user.relationship_status,
            city=user.city,
            age=user.age,
            similarity_matching=user.similarity_matching,
            complementary_matching=user.complementary_matching,
            multi_dimensional_matching=user.multi_dimensional_matching,
            deal_breaker_filtering=user.deal_breaker_filtering,
            personality=PersonalityAnalysis.model_validate(analysis) if analysis else None,
        )

    @property
    def traits(self) -> Optional[dict[str, Optional[float]]]:
        return self.personality.personality_score if self.personality else None

    @property
    def relationship_style(self) -> Optional[RelationshipStyle]:
        return self.personality.relationship_style if self.personality else None

    @property
    def compatibility_factors(self) -> Optional[CompatibilityFactors]:
        return self.personality.compatibility_factors if self.personality else None
