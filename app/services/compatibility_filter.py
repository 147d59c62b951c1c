"""
Sparkmatch — Compatibility Filter

Reduces the active-user pool to the candidates a user may be proposed:

  1. never the user themself;
  2. never anyone already paired with the user (any lifetime status);
  3. mutual seeking compatibility over a normalised gender vocabulary;
  4. relationship-goal compatibility (``both`` matches anything).
"""

from __future__ import annotations

import uuid
from typing import Iterable, Protocol

import structlog

from app.schemas.user import CandidateProfile

logger = structlog.get_logger("sparkmatch.compatibility_filter")

# ──────────────────────────────────────────────────────────────────────────────
# Normalised vocabularies
# ──────────────────────────────────────────────────────────────────────────────

EVERYONE = "everyone"
BOTH = "both"

_GENDER_SYNONYMS: dict[str, str] = {
    "male": "male",
    "man": "male",
    "men": "male",
    "female": "female",
    "woman": "female",
    "women": "female",
    "non-binary": "non-binary",
    "nonbinary": "non-binary",
    "other": "other",
    "everyone": EVERYONE,
    "both": EVERYONE,
    "all": EVERYONE,
}

_GOAL_SYNONYMS: dict[str, str] = {
    "friendship": "friendship",
    "friends": "friendship",
    "dating": "dating",
    "dating/relationships": "dating",
    "relationships": "dating",
    "long-term": "dating",
    "both": BOTH,
    "all": BOTH,
}


class PairedRecord(Protocol):
    user1_id: uuid.UUID
    user2_id: uuid.UUID


def normalize_gender(value: str | None) -> str:
    """Map a free-form gender / seeking value onto the shared vocabulary.

    Unknown values are lower-cased and kept as-is so that two identical
    custom values still compare equal.
    """
    if not value:
        return ""
    key = value.strip().lower()
    return _GENDER_SYNONYMS.get(key, key)


def normalize_looking_for(value: str | None) -> str:
    if not value:
        return ""
    key = value.strip().lower()
    return _GOAL_SYNONYMS.get(key, key)


def _seeks(seeker: CandidateProfile, other: CandidateProfile) -> bool:
    wanted = normalize_gender(seeker.interested_in)
    return wanted == EVERYONE or wanted == normalize_gender(other.gender)


def is_gender_compatible(user: CandidateProfile, candidate: CandidateProfile) -> bool:
    """Both directions must hold independently."""
    return _seeks(user, candidate) and _seeks(candidate, user)


def is_looking_for_compatible(user: CandidateProfile, candidate: CandidateProfile) -> bool:
    goal_a = normalize_looking_for(user.looking_for)
    goal_b = normalize_looking_for(candidate.looking_for)
    if goal_a == BOTH or goal_b == BOTH:
        return True
    return goal_a == goal_b


def matched_partner_ids(user_id: uuid.UUID, history: Iterable[PairedRecord]) -> set[uuid.UUID]:
    """Every user appearing opposite ``user_id`` in its match history."""
    partners: set[uuid.UUID] = set()
    for record in history:
        if record.user1_id == user_id:
            partners.add(record.user2_id)
        elif record.user2_id == user_id:
            partners.add(record.user1_id)
    return partners


def find_candidates(
    user: CandidateProfile,
    pool: Iterable[CandidateProfile],
    history: Iterable[PairedRecord],
) -> list[CandidateProfile]:
    """Return the members of ``pool`` that ``user`` may be proposed.

    Parameters
    ----------
    user:
        The acting user.
    pool:
        All active, analysis-complete users (order is preserved).
    history:
        Every match record touching ``user``, regardless of status.
    """
    already_matched = matched_partner_ids(user.id, history)

    candidates = [
        candidate
        for candidate in pool
        if candidate.id != user.id
        and candidate.id not in already_matched
        and is_gender_compatible(user, candidate)
        and is_looking_for_compatible(user, candidate)
    ]

    logger.debug(
        "candidates_filtered",
        user_id=str(user.id),
        excluded_history=len(already_matched),
        candidates=len(candidates),
    )
    return candidates
