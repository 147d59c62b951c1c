"""
Sparkmatch — Candidate scoring.

Each acting user carries exactly one preferred scoring algorithm.  The
algorithm is resolved once per user into a strategy object, every candidate
is scored by that strategy, and two universal adjustments are applied on
top of the base score:

  locality  — same city (case-insensitive): score × 1.3, capped at 100
  age       — |Δage| ≤ 2: +10, ≤ 5: +5, ≤ 10: +2, capped at 100

The final score is rounded half-up to an integer in [0, 100].
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol

import structlog

from app.config import get_settings
from app.schemas.user import TRAIT_NAMES, CandidateProfile

logger = structlog.get_logger(__name__)

NEUTRAL_TRAIT_SCORE = 50.0


class ScoringAlgorithm(str, Enum):
    SIMILARITY = "similarity"
    COMPLEMENTARY = "complementary"
    MULTI_DIMENSIONAL = "multi_dimensional"
    DEAL_BREAKER = "deal_breaker"


@dataclass(frozen=True)
class ScoredCandidate:
    candidate_id: uuid.UUID
    score: int
    algorithm: ScoringAlgorithm
    reason: str


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _trait(traits: dict, name: str) -> float:
    value = traits.get(name)
    return NEUTRAL_TRAIT_SCORE if value is None else float(value)


# ──────────────────────────────────────────────────────────────────────────────
# Strategies
# ──────────────────────────────────────────────────────────────────────────────

class ScoringStrategy(Protocol):
    algorithm: ScoringAlgorithm
    reason: str

    def score(self, user: CandidateProfile, candidate: CandidateProfile) -> float:
        ...


class SimilarityStrategy:
    """Rewards close trait vectors: 100 − 2 × mean |Δtrait|."""

    algorithm = ScoringAlgorithm.SIMILARITY
    reason = "High personality and lifestyle compatibility"

    BASE_SCORE: float = 50.0
    SAME_STATUS_BONUS: float = 5.0

    def score(self, user: CandidateProfile, candidate: CandidateProfile) -> float:
        score = self.BASE_SCORE
        traits_a, traits_b = user.traits, candidate.traits

        if traits_a is not None and traits_b is not None:
            total_diff = sum(
                abs(_trait(traits_a, t) - _trait(traits_b, t)) for t in TRAIT_NAMES
            )
            score = max(0.0, 100.0 - (total_diff / len(TRAIT_NAMES)) * 2)

        if user.relationship_status == candidate.relationship_status:
            score += self.SAME_STATUS_BONUS

        return _clamp(score)


class ComplementaryStrategy:
    """Rewards pairs whose traits balance around the midpoint, plus
    opposite polarity on extraversion and neuroticism."""

    algorithm = ScoringAlgorithm.COMPLEMENTARY
    reason = "Perfect personality balance and complementary traits"

    BASE_SCORE: float = 50.0
    POLARITY_BONUS: float = 10.0
    POLARITY_TRAITS: tuple[str, ...] = ("extraversion", "neuroticism")
    HIGH_BAND: float = 70.0
    LOW_BAND: float = 30.0

    def score(self, user: CandidateProfile, candidate: CandidateProfile) -> float:
        traits_a, traits_b = user.traits, candidate.traits
        if traits_a is None or traits_b is None:
            return self.BASE_SCORE

        balance = sum(
            100.0 - abs((_trait(traits_a, t) + _trait(traits_b, t)) / 2 - 50.0) * 2
            for t in TRAIT_NAMES
        ) / len(TRAIT_NAMES)

        opposite = sum(
            1
            for t in self.POLARITY_TRAITS
            if self._is_polar_opposite(traits_a.get(t), traits_b.get(t))
        )
        return _clamp(balance + opposite * self.POLARITY_BONUS)

    def _is_polar_opposite(self, a: float | None, b: float | None) -> bool:
        # Missing traits never count as a polarity
        if a is None or b is None:
            return False
        return (a > self.HIGH_BAND and b < self.LOW_BAND) or (
            a < self.LOW_BAND and b > self.HIGH_BAND
        )


class MultiDimensionalStrategy:
    """Mean of similarity and complementary, plus relationship-style bonuses."""

    algorithm = ScoringAlgorithm.MULTI_DIMENSIONAL
    reason = "Comprehensive compatibility across multiple dimensions"

    ATTACHMENT_BONUS: float = 10.0
    COMMUNICATION_BONUS: float = 5.0

    def __init__(self) -> None:
        self._similarity = SimilarityStrategy()
        self._complementary = ComplementaryStrategy()

    def score(self, user: CandidateProfile, candidate: CandidateProfile) -> float:
        score = (
            self._similarity.score(user, candidate)
            + self._complementary.score(user, candidate)
        ) / 2

        style_a, style_b = user.relationship_style, candidate.relationship_style
        if style_a is not None and style_b is not None:
            if style_a.attachment_style == style_b.attachment_style:
                score += self.ATTACHMENT_BONUS
            if style_a.communication_style and style_b.communication_style:
                score += self.COMMUNICATION_BONUS

        return _clamp(score)


class DealBreakerStrategy:
    """Coarse placeholder: looks only at the acting user's own lists.

    The candidate's attributes are not consulted.  Kept as-is until real
    deal-breaker / must-have matching rules exist.
    """

    algorithm = ScoringAlgorithm.DEAL_BREAKER
    reason = "No deal-breakers detected, all must-haves matched"

    BASE_SCORE: float = 70.0
    KNOWN_DEAL_BREAKERS: frozenset[str] = frozenset({"dishonesty", "lack of ambition"})
    DEAL_BREAKER_BONUS: float = 10.0
    MUST_HAVE_BONUS: float = 10.0

    def score(self, user: CandidateProfile, candidate: CandidateProfile) -> float:
        score = self.BASE_SCORE
        factors = user.compatibility_factors
        if factors is not None:
            if self.KNOWN_DEAL_BREAKERS.intersection(factors.deal_breakers):
                score += self.DEAL_BREAKER_BONUS
            if factors.must_haves:
                score += self.MUST_HAVE_BONUS
        return _clamp(score)


STRATEGIES: dict[ScoringAlgorithm, ScoringStrategy] = {
    ScoringAlgorithm.SIMILARITY: SimilarityStrategy(),
    ScoringAlgorithm.COMPLEMENTARY: ComplementaryStrategy(),
    ScoringAlgorithm.MULTI_DIMENSIONAL: MultiDimensionalStrategy(),
    ScoringAlgorithm.DEAL_BREAKER: DealBreakerStrategy(),
}


def select_algorithm(user: CandidateProfile) -> ScoringAlgorithm:
    """First enabled flag wins; similarity when none is set."""
    if user.similarity_matching:
        return ScoringAlgorithm.SIMILARITY
    if user.complementary_matching:
        return ScoringAlgorithm.COMPLEMENTARY
    if user.multi_dimensional_matching:
        return ScoringAlgorithm.MULTI_DIMENSIONAL
    if user.deal_breaker_filtering:
        return ScoringAlgorithm.DEAL_BREAKER
    return ScoringAlgorithm.SIMILARITY


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────

class ScoringService:
    """Scores candidates for one acting user under that user's algorithm."""

    AGE_BONUSES: tuple[tuple[int, float], ...] = ((2, 10.0), (5, 5.0), (10, 2.0))

    def __init__(self) -> None:
        settings = get_settings()
        self.locality_multiplier: float = settings.LOCALITY_MULTIPLIER

    # ── Public API ────────────────────────────────────────────────────────

    def strategy_for(self, user: CandidateProfile) -> ScoringStrategy:
        return STRATEGIES[select_algorithm(user)]

    def score_candidate(
        self,
        user: CandidateProfile,
        candidate: CandidateProfile,
        strategy: ScoringStrategy | None = None,
    ) -> ScoredCandidate:
        """Score a single candidate, bonuses included."""
        strategy = strategy or self.strategy_for(user)
        score = strategy.score(user, candidate)
        score = self.apply_locality_bonus(score, user, candidate)
        score = self.apply_age_bonus(score, user, candidate)
        return ScoredCandidate(
            candidate_id=candidate.id,
            score=self._round(score),
            algorithm=strategy.algorithm,
            reason=strategy.reason,
        )

    def score_candidates(
        self,
        user: CandidateProfile,
        candidates: Iterable[CandidateProfile],
    ) -> list[ScoredCandidate]:
        """Score every candidate; the strategy is resolved once per user."""
        strategy = self.strategy_for(user)
        scored = [self.score_candidate(user, c, strategy) for c in candidates]

        logger.debug(
            "candidates_scored",
            user_id=str(user.id),
            algorithm=strategy.algorithm.value,
            count=len(scored),
        )
        return scored

    # ── Adjustments ───────────────────────────────────────────────────────

    def apply_locality_bonus(
        self, score: float, user: CandidateProfile, candidate: CandidateProfile
    ) -> float:
        if user.city and candidate.city and user.city.lower() == candidate.city.lower():
            return min(100.0, score * self.locality_multiplier)
        return score

    def apply_age_bonus(
        self, score: float, user: CandidateProfile, candidate: CandidateProfile
    ) -> float:
        if not user.age or not candidate.age:
            return score
        age_diff = abs(user.age - candidate.age)
        for max_diff, bonus in self.AGE_BONUSES:
            if age_diff <= max_diff:
                return min(100.0, score + bonus)
        return score

    @staticmethod
    def _round(score: float) -> int:
        # Half-up, so 62.5 -> 63 rather than banker's rounding
        return int(math.floor(_clamp(score) + 0.5))
