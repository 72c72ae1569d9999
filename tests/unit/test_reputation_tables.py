"""Level / rank lookups and the points table."""

import pytest

from tutorug.reputation.tables import (
    DEFAULT_CONFIG,
    LEVEL_THRESHOLDS,
    POINTS,
    RANKS,
    compute_level,
    compute_rank,
)


class TestComputeLevel:
    def test_zero_points_is_level_1(self):
        info = compute_level(0)
        assert info["level"] == 1
        assert info["points_into_level"] == 0
        assert info["points_for_level"] == 100
        assert info["next_level"] == 2
        assert info["max_level"] is False

    def test_just_below_threshold(self):
        assert compute_level(99)["level"] == 1

    def test_exact_threshold_reaches_level(self):
        info = compute_level(100)
        assert info["level"] == 2
        assert info["points_into_level"] == 0
        assert info["points_for_level"] == 150

    @pytest.mark.parametrize(
        ("points", "level"),
        [(250, 3), (499, 3), (500, 4), (1000, 5), (1749, 5), (1750, 6), (5500, 9)],
    )
    def test_thresholds(self, points, level):
        assert compute_level(points)["level"] == level

    def test_max_level(self):
        info = compute_level(7500)
        assert info["level"] == len(LEVEL_THRESHOLDS)
        assert info["max_level"] is True
        assert info["next_level"] == 10
        # Never zero, progress bars divide by it
        assert info["points_for_level"] == 1

    def test_points_beyond_max_stay_at_max(self):
        info = compute_level(1_000_000)
        assert info["level"] == 10
        assert info["points_into_level"] == 1_000_000 - 7500


class TestComputeRank:
    @pytest.mark.parametrize(
        ("points", "rank"),
        [
            (0, "learner"),
            (499, "learner"),
            (500, "helper"),
            (1499, "helper"),
            (1500, "tutor"),
            (3000, "expert"),
            (5999, "expert"),
            (6000, "master"),
            (100_000, "master"),
        ],
    )
    def test_rank_boundaries(self, points, rank):
        assert compute_rank(points) == rank

    def test_rank_order(self):
        assert RANKS == ("learner", "helper", "tutor", "expert", "master")


class TestPointsTable:
    def test_quiz_values(self):
        assert POINTS["QUIZ_COMPLETED"] == 10
        assert POINTS["QUIZ_PASSED"] == 25
        assert POINTS["QUIZ_HIGH_SCORE"] == 50
        assert POINTS["QUIZ_PERFECT"] == 100
        assert POINTS["AI_CHAT_MESSAGE"] == 1

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            POINTS["AI_CHAT_MESSAGE"] = 1000  # type: ignore[index]

    def test_config_is_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_CONFIG.weekly_points_target = 1  # type: ignore[misc]

    def test_badge_slugs_unique(self):
        slugs = [rule.slug for rule in DEFAULT_CONFIG.badges]
        assert len(slugs) == len(set(slugs))
