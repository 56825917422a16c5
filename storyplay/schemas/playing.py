"""
Playing session schema definitions

PlayingSession is the durable record of one player's traversal of a story.
PendingTransition is the answer staged between a question and the
acknowledgement of its feedback. The server keeps the authoritative copy;
the one handed to the client only identifies it.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .story import EndingType, SceneType


class PlayState(str, Enum):
    INTRO = "intro"
    QUESTION = "question"
    FEEDBACK = "feedback"
    ENDING = "ending"
    FINISHED = "finished"


class PlayingSession(BaseModel):
    """One player's in-progress or completed run through a story"""

    id: Optional[int] = None
    story_id: int
    user_id: str
    start_time: datetime
    score: int = 0
    max_score: int = Field(..., ge=0, description="Question count x points per question")
    level: int = Field(default=3, ge=1, le=3)
    current_scene_id: int
    current_scene_type: SceneType
    finished: bool = False
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> bool:
        """Finished without reaching an ending scene"""
        return self.finished and self.current_scene_type != SceneType.ENDING


class PendingTransition(BaseModel):
    """Answer staged between a question and the acknowledgement of its feedback"""

    session_id: int
    token: str = Field(..., description="Identifies the staged answer held by the server")
    question_scene_id: int
    answer_option_id: int
    score: int
    level: int = Field(..., ge=1, le=3)
    next_question_scene_id: Optional[int] = None
    feedback_text: str = ""
    issued_at: datetime

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        """Older than the TTL, or issued in the future."""
        now = now or datetime.utcnow()
        issued_at = self.issued_at
        if issued_at.tzinfo is not None:
            issued_at = issued_at.astimezone(timezone.utc).replace(tzinfo=None)
        if issued_at > now:
            return True
        return now - issued_at > timedelta(seconds=ttl_seconds)


# ==================== Views ====================


class OptionView(BaseModel):
    """An answer option as shown to the player (correctness hidden)"""

    id: int
    text: str


class SceneView(BaseModel):
    """Everything needed to render the session's current scene"""

    session_id: int
    state: PlayState
    scene_type: SceneType
    scene_id: int
    text: str
    question: Optional[str] = None
    options: Optional[List[OptionView]] = None
    seed: Optional[str] = Field(
        default=None, description="Send back with the answer to keep the same options"
    )
    ending_type: Optional[EndingType] = None
    score: int
    max_score: int
    level: int


class FeedbackView(BaseModel):
    feedback_text: str
    is_correct: bool
    points_earned: int
    score: int
    level: int
    next_scene_type: SceneType


class SessionSummary(BaseModel):
    session_id: int
    story_id: int
    story_title: str
    final_score: int
    max_score: int
    level: int
    ending_type: Optional[EndingType] = None
    failed: bool = False
    finished: bool = False
    finished_at: Optional[datetime] = None


class AnswerResult(BaseModel):
    """Outcome of submitting an answer"""

    outcome: Literal["feedback", "finished"]
    feedback: Optional[FeedbackView] = None
    pending: Optional[PendingTransition] = None
    summary: Optional[SessionSummary] = None
