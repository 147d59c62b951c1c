"""Unit tests for the compatibility filter."""
import uuid
from types import SimpleNamespace

import pytest

from app.services.compatibility_filter import (
    find_candidates,
    is_gender_compatible,
    is_looking_for_compatible,
    matched_partner_ids,
    normalize_gender,
    normalize_looking_for,
)


class TestNormalisation:
    """Vocabulary normalisation."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Men", "male"),
            ("man", "male"),
            ("Women", "female"),
            ("nonbinary", "non-binary"),
            ("Everyone", "everyone"),
            ("Both", "everyone"),
            ("ALL", "everyone"),
            ("Other", "other"),
            (None, ""),
            ("Genderfluid", "genderfluid"),
        ],
    )
    def test_gender_synonyms(self, raw, expected):
        assert normalize_gender(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Friends", "friendship"),
            ("Dating/Relationships", "dating"),
            ("long-term", "dating"),
            ("All", "both"),
            ("", ""),
        ],
    )
    def test_looking_for_synonyms(self, raw, expected):
        assert normalize_looking_for(raw) == expected


class TestGenderCompatibility:
    """Seeking preferences must hold in both directions."""

    def test_everyone_and_specific_match(self, profile_factory):
        a = profile_factory(gender="male", interested_in="Everyone")
        b = profile_factory(gender="female", interested_in="Men")
        assert is_gender_compatible(a, b)
        assert is_gender_compatible(b, a)

    def test_one_sided_interest_is_rejected(self, profile_factory):
        a = profile_factory(gender="male", interested_in="women")
        b = profile_factory(gender="female", interested_in="women")
        assert not is_gender_compatible(a, b)
        assert not is_gender_compatible(b, a)

    def test_missing_preference_never_matches_a_gender(self, profile_factory):
        a = profile_factory(gender="male", interested_in=None)
        b = profile_factory(gender="female", interested_in="everyone")
        assert not is_gender_compatible(a, b)


class TestLookingForCompatibility:

    def test_both_matches_anything(self, profile_factory):
        a = profile_factory(looking_for="both")
        b = profile_factory(looking_for="friendship")
        assert is_looking_for_compatible(a, b)

    def test_different_goals_rejected(self, profile_factory):
        a = profile_factory(looking_for="friends")
        b = profile_factory(looking_for="relationships")
        assert not is_looking_for_compatible(a, b)

    def test_synonyms_compare_equal(self, profile_factory):
        a = profile_factory(looking_for="Dating")
        b = profile_factory(looking_for="long-term")
        assert is_looking_for_compatible(a, b)


class TestFindCandidates:
    """Filtering order and history exclusion."""

    def test_excludes_self(self, profile_factory):
        user = profile_factory()
        assert find_candidates(user, [user], []) == []

    def test_excludes_any_historical_partner(self, profile_factory):
        user = profile_factory()
        seen = profile_factory()
        fresh = profile_factory()
        history = [SimpleNamespace(user1_id=seen.id, user2_id=user.id)]

        result = find_candidates(user, [user, seen, fresh], history)

        assert [c.id for c in result] == [fresh.id]

    def test_incompatible_preferences_never_candidates(self, profile_factory, sample_traits_a):
        # Identical personalities do not override seeking preferences
        user = profile_factory(gender="male", interested_in="women", traits=sample_traits_a)
        other = profile_factory(gender="female", interested_in="women", traits=sample_traits_a)
        assert find_candidates(user, [other], []) == []
        assert find_candidates(other, [user], []) == []

    def test_preserves_pool_order(self, profile_factory):
        user = profile_factory()
        pool = [profile_factory() for _ in range(4)]
        assert [c.id for c in find_candidates(user, pool, [])] == [p.id for p in pool]

    def test_matched_partner_ids_reads_both_sides(self):
        me, a, b = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        history = [
            SimpleNamespace(user1_id=me, user2_id=a),
            SimpleNamespace(user1_id=b, user2_id=me),
            SimpleNamespace(user1_id=a, user2_id=b),
        ]
        assert matched_partner_ids(me, history) == {a, b}
