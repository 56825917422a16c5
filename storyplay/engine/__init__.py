"""
Core engine components for storyplay
"""

from .catalogue import StoryCatalogue
from .endings import resolve_ending
from .player import StoryPlayer, state_of
from .scoring import ScoreOutcome, score_and_level
from .selector import new_seed, select_options

__all__ = [
    "StoryPlayer",
    "StoryCatalogue",
    "state_of",
    "select_options",
    "new_seed",
    "score_and_level",
    "ScoreOutcome",
    "resolve_ending",
]
