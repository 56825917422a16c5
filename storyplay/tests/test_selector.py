"""
Unit tests for adaptive answer option selection.
"""

import pytest

from storyplay.engine.selector import new_seed, options_to_show, select_options
from storyplay.errors import DataIntegrityError
from storyplay.schemas import AnswerOption


def build_options(total: int, correct_index: int = 0):
    return [
        AnswerOption(
            id=i + 1,
            question_scene_id=1,
            text=f"option {i + 1}",
            feedback_text="",
            is_correct=(i == correct_index),
        )
        for i in range(total)
    ]


class TestOptionsToShow:
    """Test how many options each level surfaces"""

    @pytest.mark.parametrize(
        "level,total,expected",
        [(3, 6, 4), (2, 6, 3), (1, 6, 2), (3, 2, 2), (2, 2, 2), (7, 6, 4), (0, 3, 3)],
    )
    def test_counts(self, level, total, expected):
        assert options_to_show(level, total) == expected


class TestSelectOptions:
    """Test select_options"""

    @pytest.mark.parametrize("level,expected", [(3, 4), (2, 3), (1, 2)])
    def test_returns_expected_count_with_correct_option(self, level, expected):
        options = build_options(6, correct_index=4)
        for seed in ("a", "b", "c", "d", "e"):
            selected = select_options(options, level, seed)
            assert len(selected) == expected
            assert sum(1 for option in selected if option.is_correct) == 1
            assert len({option.id for option in selected}) == expected

    def test_same_seed_same_sequence(self):
        options = build_options(5)
        seed = new_seed()
        first = [option.id for option in select_options(options, 3, seed)]
        for _ in range(5):
            assert [option.id for option in select_options(options, 3, seed)] == first

    def test_input_order_does_not_matter(self):
        """The draw only depends on the options, not on how they are ordered"""
        options = build_options(6)
        forward = select_options(options, 2, "seed-1")
        backward = select_options(list(reversed(options)), 2, "seed-1")
        assert [o.id for o in forward] == [o.id for o in backward]

    def test_correct_position_varies_with_seed(self):
        options = build_options(4)
        positions = set()
        for i in range(50):
            selected = select_options(options, 3, f"seed-{i}")
            positions.add(next(idx for idx, o in enumerate(selected) if o.is_correct))
        assert len(positions) > 1

    def test_fewer_options_than_level_allows(self):
        options = build_options(2)
        selected = select_options(options, 3, "x")
        assert {option.id for option in selected} == {1, 2}

    def test_too_few_options(self):
        with pytest.raises(DataIntegrityError):
            select_options(build_options(1), 3, "x")

    def test_no_correct_option(self):
        options = build_options(3, correct_index=99)
        with pytest.raises(DataIntegrityError):
            select_options(options, 3, "x")

    def test_two_correct_options(self):
        options = build_options(3)
        options[1] = options[1].model_copy(update={"is_correct": True})
        with pytest.raises(DataIntegrityError):
            select_options(options, 3, "x")

    def test_new_seed_is_unique(self):
        assert new_seed() != new_seed()
