"""
Story playing API endpoints.

Each endpoint maps one event of the playing state machine: starting a
story, showing the current scene, leaving the intro, answering, acknowledging
feedback and acknowledging the ending. The pending answer returned by the
answer endpoint is posted back unchanged to acknowledge the feedback.
"""

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from storyplay.config import settings
from storyplay.db.manager import DatabaseManager
from storyplay.engine.catalogue import StoryCatalogue
from storyplay.engine.player import StoryPlayer
from storyplay.errors import InvalidArgument
from storyplay.schemas import AnswerResult, PendingTransition, SceneView, SessionSummary
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Database manager for persistent storage
db = DatabaseManager(settings.database_path)


def _player() -> StoryPlayer:
    return StoryPlayer(db)


class StartRequest(BaseModel):
    """Request to start playing a story"""

    story_id: int
    user_id: str = Field(..., min_length=1)
    code: Optional[str] = Field(default=None, description="Access code for private stories")


class AnswerRequest(BaseModel):
    """Answer to the current question"""

    scene_id: Optional[int] = None
    answer_option_id: Optional[int] = None
    seed: Optional[str] = Field(
        default=None, description="Seed received with the scene the answer was given on"
    )


@router.post("/start")
async def start_story(request: StartRequest):
    """Start a new playing session and return it with its first scene."""
    logger.info("=" * 60)
    logger.info(f"START STORY: story={request.story_id} user={request.user_id}")

    player = _player()
    session = player.start_story(request.story_id, request.user_id, request.code)
    scene = player.present_scene(session.id)
    return {"session": session.model_dump(mode="json"), "scene": scene.model_dump(mode="json")}


@router.get("/sessions", tags=["admin"])
async def list_sessions(limit: int = Query(default=50, ge=1, le=500)):
    """Most recent playing sessions."""
    sessions = StoryCatalogue(db).list_sessions(limit)
    return {"sessions": [session.model_dump(mode="json") for session in sessions]}


@router.get("/sessions/{session_id}/scene", response_model=SceneView)
async def get_scene(session_id: int, seed: Optional[str] = Query(default=None)):
    """
    Current scene of a session.

    Pass the seed of an earlier presentation to get the same answer options
    again; leave it out to draw new ones.
    """
    return _player().present_scene(session_id, seed)


@router.post("/sessions/{session_id}/intro", response_model=SceneView)
async def leave_intro(session_id: int):
    player = _player()
    player.acknowledge_intro(session_id)
    return player.present_scene(session_id)


@router.post("/sessions/{session_id}/answer", response_model=AnswerResult)
async def answer_question(session_id: int, request: AnswerRequest):
    """Answer the current question; returns feedback or the final summary."""
    return _player().submit_answer(
        session_id, request.scene_id, request.answer_option_id, request.seed
    )


@router.post("/sessions/{session_id}/feedback", response_model=SceneView)
async def acknowledge_feedback(session_id: int, pending: PendingTransition):
    """Commit the pending answer and return the next scene."""
    if pending.session_id != session_id:
        raise InvalidArgument("The pending answer belongs to another session.")
    player = _player()
    player.acknowledge_feedback(pending)
    return player.present_scene(session_id)


@router.post("/sessions/{session_id}/ending", response_model=SessionSummary)
async def finish_story(session_id: int):
    return _player().acknowledge_ending(session_id)


@router.get("/sessions/{session_id}/summary", response_model=SessionSummary)
async def get_summary(session_id: int):
    return _player().get_summary(session_id)
