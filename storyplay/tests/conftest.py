"""
Shared fixtures for the storyplay test suite.
"""

import os
import tempfile

# The API modules open their database at import time; keep it out of the working tree
os.environ.setdefault(
    "DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="storyplay-tests-"), "api.db")
)

import pytest

from storyplay.config import Settings
from storyplay.db.manager import DatabaseManager
from storyplay.engine import StoryCatalogue, StoryPlayer
from storyplay.schemas import (
    Accessibility,
    AnswerOptionInput,
    EndingSceneInput,
    EndingType,
    QuestionSceneInput,
    StoryContent,
)


def make_content(question_count: int = 3, options_per_question: int = 4) -> StoryContent:
    """Story content whose first option is always the correct one"""
    questions = []
    for q in range(1, question_count + 1):
        options = [
            AnswerOptionInput(
                text=f"Q{q} option {o}",
                feedback_text=f"Q{q} feedback {o}",
                is_correct=(o == 1),
            )
            for o in range(1, options_per_question + 1)
        ]
        questions.append(
            QuestionSceneInput(text=f"Scene {q}", question=f"Question {q}?", options=options)
        )

    return StoryContent(
        intro_text="Once upon a time",
        questions=questions,
        endings=[
            EndingSceneInput(ending_type=EndingType.GOOD, text="The good ending"),
            EndingSceneInput(ending_type=EndingType.NEUTRAL, text="The neutral ending"),
            EndingSceneInput(ending_type=EndingType.BAD, text="The bad ending"),
        ],
    )


@pytest.fixture
def config():
    return Settings(database_path=":memory:", seed_demo_content=False)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / "storyplay.db"))
    yield manager
    manager.dispose()


@pytest.fixture
def catalogue(db, config):
    return StoryCatalogue(db, config)


@pytest.fixture
def player(db, config):
    return StoryPlayer(db, config)


@pytest.fixture
def make_story(catalogue):
    """Factory creating stories through the catalogue"""

    def _make_story(
        question_count: int = 3,
        options_per_question: int = 4,
        accessibility: Accessibility = Accessibility.PUBLIC,
        owner_id: str = "author-1",
        title: str = "Test Story",
    ):
        return catalogue.create_story(
            owner_id=owner_id,
            title=title,
            content=make_content(question_count, options_per_question),
            accessibility=accessibility,
        )

    return _make_story


@pytest.fixture
def story(make_story):
    return make_story()


@pytest.fixture
def option_for(db):
    """Id of the correct (or an incorrect) option of a question scene"""

    def _option_for(scene_id: int, correct: bool = True) -> int:
        with db.transaction() as tx:
            scene = tx.content.get_question_scene_with_options(scene_id)
        return next(option.id for option in scene.options if option.is_correct == correct)

    return _option_for


@pytest.fixture
def stats_of(db):
    def _stats_of(story_id: int):
        with db.transaction() as tx:
            return tx.stories.get_story(story_id).stats

    return _stats_of
