"""
Story catalogue API endpoints.

This module handles story creation, browsing, joining private stories by
code, editing a story and its scenes, and the author/admin management
actions.
"""

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from storyplay.config import settings
from storyplay.db.manager import DatabaseManager
from storyplay.engine.catalogue import StoryCatalogue
from storyplay.schemas import (
    Accessibility,
    DifficultyLevel,
    EndingType,
    QuestionSceneInput,
    StoryContent,
)
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Database manager for persistent storage
db = DatabaseManager(settings.database_path)


def _catalogue() -> StoryCatalogue:
    return StoryCatalogue(db)


class StoryCreateRequest(BaseModel):
    """Request to create a story with its complete scene graph"""

    owner_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    accessibility: Accessibility = Accessibility.PUBLIC
    content: StoryContent


class AccessibilityRequest(BaseModel):
    owner_id: str
    accessibility: Accessibility


class StoryUpdateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM


class SceneTextRequest(BaseModel):
    """New text of an intro or ending scene"""

    text: str = Field(..., min_length=1)


class JoinRequest(BaseModel):
    code: str = ""


@router.get("/")
async def list_public_stories(search: Optional[str] = Query(default=None)):
    """List public stories, optionally filtered by title."""
    stories = _catalogue().list_public_stories(search)
    logger.debug(f"Listing {len(stories)} public stories (search={search!r})")
    return {"stories": [story.public_view() for story in stories]}


@router.get("/private")
async def list_private_stories():
    """List private stories; their codes are not included."""
    stories = _catalogue().list_private_stories()
    return {"stories": [story.public_view() for story in stories]}


@router.post("/")
async def create_story(request: StoryCreateRequest):
    """Create a story. The response includes the access code of private stories."""
    logger.info(f"Creating story '{request.title}' for {request.owner_id}")
    story = _catalogue().create_story(
        owner_id=request.owner_id,
        title=request.title,
        content=request.content,
        description=request.description,
        difficulty=request.difficulty,
        accessibility=request.accessibility,
    )
    response = story.public_view()
    response["code"] = story.code
    return response


@router.post("/join")
async def join_private_story(request: JoinRequest):
    """Find a private story by its access code."""
    story = _catalogue().find_private_story_by_code(request.code)
    return {"story_id": story.id, "title": story.title}


@router.get("/recent/{user_id}")
async def recently_played(user_id: str, limit: int = Query(default=5, ge=1, le=50)):
    stories = _catalogue().recently_played(user_id, limit)
    return {"stories": [story.public_view() for story in stories]}


@router.get("/owner/{owner_id}")
async def stories_by_owner(owner_id: str):
    stories = _catalogue().list_stories_by_owner(owner_id)
    return {"stories": [story.public_view() for story in stories]}


@router.put("/questions/{scene_id}")
async def update_question_scene(
    scene_id: int,
    scene: QuestionSceneInput,
    requester_id: str = Query(...),
    is_admin: bool = Query(default=False),
):
    """Replace a question scene's text, question and answer options."""
    updated = _catalogue().update_question_scene(scene_id, requester_id, scene, is_admin)
    return updated.model_dump(mode="json")


@router.delete("/questions/{scene_id}")
async def delete_question_scene(
    scene_id: int, requester_id: str = Query(...), is_admin: bool = Query(default=False)
):
    _catalogue().delete_question_scene(scene_id, requester_id, is_admin)
    return {"deleted": scene_id}


@router.get("/{story_id}")
async def get_story_details(
    story_id: int, requester_id: str = Query(...), is_admin: bool = Query(default=False)
):
    """Story details with statistics; author or admin only."""
    return _catalogue().get_story_details(story_id, requester_id, is_admin)


@router.put("/{story_id}")
async def update_story(
    story_id: int,
    request: StoryUpdateRequest,
    requester_id: str = Query(...),
    is_admin: bool = Query(default=False),
):
    story = _catalogue().update_story(
        story_id,
        requester_id,
        request.title,
        request.description,
        request.difficulty,
        is_admin,
    )
    response = story.public_view()
    response["code"] = story.code
    return response


@router.put("/{story_id}/intro")
async def update_intro_scene(
    story_id: int,
    request: SceneTextRequest,
    requester_id: str = Query(...),
    is_admin: bool = Query(default=False),
):
    intro = _catalogue().update_intro_scene(story_id, requester_id, request.text, is_admin)
    return intro.model_dump(mode="json")


@router.post("/{story_id}/questions")
async def add_question_scene(
    story_id: int,
    scene: QuestionSceneInput,
    requester_id: str = Query(...),
    is_admin: bool = Query(default=False),
):
    """Append a question scene after the story's last question."""
    added = _catalogue().add_question_scene(story_id, requester_id, scene, is_admin)
    return added.model_dump(mode="json")


@router.put("/{story_id}/endings/{ending_type}")
async def update_ending_scene(
    story_id: int,
    ending_type: EndingType,
    request: SceneTextRequest,
    requester_id: str = Query(...),
    is_admin: bool = Query(default=False),
):
    ending = _catalogue().update_ending_scene(
        story_id, requester_id, ending_type, request.text, is_admin
    )
    return ending.model_dump(mode="json")


@router.put("/{story_id}/accessibility")
async def set_accessibility(story_id: int, request: AccessibilityRequest):
    story = _catalogue().set_accessibility(
        story_id, request.owner_id, request.accessibility
    )
    response = story.public_view()
    response["code"] = story.code
    return response


@router.delete("/{story_id}")
async def delete_story(
    story_id: int, requester_id: str = Query(...), is_admin: bool = Query(default=False)
):
    _catalogue().delete_story(story_id, requester_id, is_admin)
    return {"deleted": story_id}
