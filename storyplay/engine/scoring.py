"""
Scoring and leveling policy.

A correct answer earns points according to the level it was answered on and
moves the player one level up; an incorrect answer earns nothing and moves
one level down. Answering incorrectly on level 1 ends the session.
"""

from typing import NamedTuple

from storyplay.errors import InvalidArgument

LEVEL_MIN = 1
LEVEL_MAX = 3

POINTS_BY_LEVEL = {3: 10, 2: 5, 1: 1}


class ScoreOutcome(NamedTuple):
    points: int
    new_level: int
    terminated: bool


def points_for_correct_answer(level: int) -> int:
    return POINTS_BY_LEVEL.get(level, 0)


def score_and_level(current_level: int, is_correct: bool) -> ScoreOutcome:
    """
    Apply one answer to the player's level.

    Args:
        current_level: Level the question was answered on (1-3)
        is_correct: Whether the chosen option was the correct one

    Returns:
        ScoreOutcome with points earned, the level after the answer, and
        whether the session ends here (incorrect answer on level 1)
    """
    if not LEVEL_MIN <= current_level <= LEVEL_MAX:
        raise InvalidArgument(
            f"Level must be between {LEVEL_MIN} and {LEVEL_MAX}, got {current_level}"
        )

    if is_correct:
        return ScoreOutcome(
            points=points_for_correct_answer(current_level),
            new_level=min(current_level + 1, LEVEL_MAX),
            terminated=False,
        )

    return ScoreOutcome(
        points=0,
        new_level=max(current_level - 1, LEVEL_MIN),
        terminated=current_level == LEVEL_MIN,
    )
