"""
Ending resolution policy: map a final score onto one of three endings.
"""

from storyplay.errors import InvalidArgument
from storyplay.schemas import EndingType

GOOD_THRESHOLD = 80.0
NEUTRAL_THRESHOLD = 40.0


def resolve_ending(
    score: int,
    max_score: int,
    good_threshold: float = GOOD_THRESHOLD,
    neutral_threshold: float = NEUTRAL_THRESHOLD,
) -> EndingType:
    """
    Resolve the ending band for a score.

    Thresholds are inclusive lower bounds in percent: with the defaults,
    80% and above is good, 40% up to 80% is neutral, below 40% is bad.

    Raises:
        InvalidArgument: If max_score is not positive
    """
    if max_score <= 0:
        raise InvalidArgument(f"Max score must be greater than zero, got {max_score}")

    # percentage >= threshold, scaled to stay exact at the boundaries
    scaled = score * 100
    if scaled >= good_threshold * max_score:
        return EndingType.GOOD
    if scaled >= neutral_threshold * max_score:
        return EndingType.NEUTRAL
    return EndingType.BAD
