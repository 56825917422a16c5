"""
Adaptive answer option selection.

The player's level decides how many options a question shows: the harder
the level, the more incorrect options compete with the single correct one.
Selection and ordering are driven by an explicit seed so that re-rendering a
question with the same seed shows exactly the same options in the same order.
"""

import random
import uuid
from typing import Iterable, List, Union

from storyplay.errors import DataIntegrityError
from storyplay.schemas import AnswerOption

Seed = Union[str, int]

# Number of options shown per level (correct option included)
OPTIONS_PER_LEVEL = {3: 4, 2: 3, 1: 2}
DEFAULT_OPTION_COUNT = OPTIONS_PER_LEVEL[3]


def new_seed() -> str:
    """Fresh seed for one presentation of a question scene."""
    return uuid.uuid4().hex


def options_to_show(level: int, total: int) -> int:
    """How many of `total` options are surfaced at `level`; unknown levels act as 3."""
    return min(OPTIONS_PER_LEVEL.get(level, DEFAULT_OPTION_COUNT), total)


def select_options(
    options: Iterable[AnswerOption], level: int, seed: Seed
) -> List[AnswerOption]:
    """
    Pick and order the answer options to present for a question.

    The correct option is always included; the remaining slots are filled by
    sampling incorrect options without replacement. The final list is shuffled
    with the same seeded generator so the correct option's position carries no
    information.

    Args:
        options: Every answer option of the question scene
        level: The player's current level (1-3)
        seed: Seed for the random source; same inputs give the same output

    Returns:
        Ordered list of options to show

    Raises:
        DataIntegrityError: Fewer than two options, or not exactly one correct option
    """
    all_options = list(options)
    if len(all_options) < 2:
        raise DataIntegrityError(
            f"A question scene needs at least 2 answer options, found {len(all_options)}"
        )

    correct = [option for option in all_options if option.is_correct]
    if len(correct) != 1:
        raise DataIntegrityError(
            f"A question scene needs exactly one correct answer option, found {len(correct)}"
        )

    # Sort so the caller's iteration order never affects the draw
    incorrect = sorted(
        (option for option in all_options if not option.is_correct),
        key=lambda option: option.id,
    )

    rng = random.Random(seed)
    count = options_to_show(level, len(all_options))

    selected = [correct[0]] + rng.sample(incorrect, count - 1)
    rng.shuffle(selected)
    return selected
