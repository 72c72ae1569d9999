"""Quiz points: completion plus stacking bonuses."""

import pytest

from tutorug.quizzes.scoring import quiz_points


@pytest.mark.parametrize(
    ("score", "passing", "expected"),
    [
        (0, 50, 10),
        (49, 50, 10),
        (50, 50, 35),
        (89, 50, 35),
        (90, 50, 85),
        (99, 50, 85),
        (100, 50, 185),
        # High score without passing a strict quiz
        (92, 95, 60),
    ],
)
def test_quiz_points(score, passing, expected):
    assert quiz_points(score, passing) == expected


def test_custom_points_table():
    table = {"QUIZ_COMPLETED": 1, "QUIZ_PASSED": 2, "QUIZ_HIGH_SCORE": 4, "QUIZ_PERFECT": 8}
    assert quiz_points(100, 50, table) == 15
