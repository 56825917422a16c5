"""
Pydantic schemas for stories, scenes and playing sessions
"""

from .playing import (
    AnswerResult,
    FeedbackView,
    OptionView,
    PendingTransition,
    PlayingSession,
    PlayState,
    SceneView,
    SessionSummary,
)
from .story import (
    Accessibility,
    AnswerOption,
    AnswerOptionInput,
    DifficultyLevel,
    EndingScene,
    EndingSceneInput,
    EndingType,
    IntroScene,
    QuestionChain,
    QuestionScene,
    QuestionSceneInput,
    Scene,
    SceneType,
    Story,
    StoryContent,
    StoryStats,
)

__all__ = [
    # Story content
    "Accessibility",
    "DifficultyLevel",
    "SceneType",
    "EndingType",
    "AnswerOption",
    "IntroScene",
    "QuestionScene",
    "EndingScene",
    "Scene",
    "QuestionChain",
    "Story",
    "StoryStats",
    # Authoring input
    "StoryContent",
    "QuestionSceneInput",
    "AnswerOptionInput",
    "EndingSceneInput",
    # Playing
    "PlayState",
    "PlayingSession",
    "PendingTransition",
    "OptionView",
    "SceneView",
    "FeedbackView",
    "SessionSummary",
    "AnswerResult",
]
