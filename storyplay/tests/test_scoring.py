"""
Unit tests for scoring, leveling and ending resolution.
"""

import pytest

from storyplay.engine.endings import resolve_ending
from storyplay.engine.scoring import ScoreOutcome, score_and_level
from storyplay.errors import InvalidArgument
from storyplay.schemas import EndingType


class TestScoreAndLevel:
    """Test the scoring and leveling policy"""

    @pytest.mark.parametrize(
        "level,points,new_level", [(3, 10, 3), (2, 5, 3), (1, 1, 2)]
    )
    def test_correct_answer(self, level, points, new_level):
        assert score_and_level(level, True) == ScoreOutcome(points, new_level, False)

    @pytest.mark.parametrize("level,new_level", [(3, 2), (2, 1)])
    def test_incorrect_answer(self, level, new_level):
        assert score_and_level(level, False) == ScoreOutcome(0, new_level, False)

    def test_incorrect_on_level_one_terminates(self):
        outcome = score_and_level(1, False)
        assert outcome.terminated is True
        assert outcome.points == 0
        assert outcome.new_level == 1

    @pytest.mark.parametrize("level", [0, 4, -1])
    def test_level_out_of_range(self, level):
        with pytest.raises(InvalidArgument):
            score_and_level(level, True)


class TestResolveEnding:
    """Test ending resolution"""

    @pytest.mark.parametrize(
        "score,max_score,expected",
        [
            (30, 30, EndingType.GOOD),
            (24, 30, EndingType.GOOD),
            (8, 10, EndingType.GOOD),
            (79, 100, EndingType.NEUTRAL),
            (20, 50, EndingType.NEUTRAL),
            (4, 10, EndingType.NEUTRAL),
            (39, 100, EndingType.BAD),
            (0, 30, EndingType.BAD),
        ],
    )
    def test_bands(self, score, max_score, expected):
        assert resolve_ending(score, max_score) == expected

    def test_custom_thresholds(self):
        assert resolve_ending(5, 10, good_threshold=50, neutral_threshold=20) == EndingType.GOOD
        assert resolve_ending(1, 10, good_threshold=50, neutral_threshold=20) == EndingType.BAD

    @pytest.mark.parametrize("max_score", [0, -10])
    def test_non_positive_max_score(self, max_score):
        with pytest.raises(InvalidArgument):
            resolve_ending(0, max_score)
