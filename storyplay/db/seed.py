"""
Demo content for development databases.
"""

from typing import Optional

from storyplay.db.manager import DatabaseManager
from storyplay.engine.catalogue import StoryCatalogue
from storyplay.schemas import (
    Accessibility,
    AnswerOptionInput,
    DifficultyLevel,
    EndingSceneInput,
    EndingType,
    QuestionSceneInput,
    Story,
    StoryContent,
)
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)

DEMO_OWNER_ID = "demo-author"


def demo_story_content() -> StoryContent:
    """Three-question story about a lighthouse keeper's mathematics."""
    return StoryContent(
        intro_text=(
            "Old Mira keeps the lighthouse on Gull Island. Tonight a storm is "
            "coming and she needs your help to get the light ready in time."
        ),
        questions=[
            QuestionSceneInput(
                text="The lamp needs oil. Mira has 3 cans with 4 litres each.",
                question="How many litres of oil does Mira have?",
                options=[
                    AnswerOptionInput(
                        text="12",
                        feedback_text="Exactly! The tank is full and the lamp flickers to life.",
                        is_correct=True,
                    ),
                    AnswerOptionInput(
                        text="7",
                        feedback_text="Mira counts again. 7 litres would not be enough.",
                    ),
                    AnswerOptionInput(
                        text="10",
                        feedback_text="Close, but one can is left standing by the door.",
                    ),
                    AnswerOptionInput(
                        text="16",
                        feedback_text="Mira laughs: she wishes she had that much!",
                    ),
                ],
            ),
            QuestionSceneInput(
                text="The stairs to the top have 120 steps. You have climbed half.",
                question="How many steps are left?",
                options=[
                    AnswerOptionInput(
                        text="60",
                        feedback_text="Right, 60 more. Your legs ache but you keep going.",
                        is_correct=True,
                    ),
                    AnswerOptionInput(
                        text="50", feedback_text="You reach a landing, but not the top."
                    ),
                    AnswerOptionInput(
                        text="80", feedback_text="That feels like more than half."
                    ),
                    AnswerOptionInput(
                        text="40", feedback_text="If only it were that few."
                    ),
                ],
            ),
            QuestionSceneInput(
                text="The light must turn once every 15 seconds.",
                question="How many turns does it make in one minute?",
                options=[
                    AnswerOptionInput(
                        text="4",
                        feedback_text="The beam sweeps the sea four times a minute. Perfect.",
                        is_correct=True,
                    ),
                    AnswerOptionInput(
                        text="15", feedback_text="The light spins far too fast."
                    ),
                    AnswerOptionInput(
                        text="6", feedback_text="The ships see the beam at the wrong rhythm."
                    ),
                    AnswerOptionInput(
                        text="2", feedback_text="The beam is too slow for the ships."
                    ),
                ],
            ),
        ],
        endings=[
            EndingSceneInput(
                ending_type=EndingType.GOOD,
                text="Every ship finds its way home. Mira names the new lamp after you.",
            ),
            EndingSceneInput(
                ending_type=EndingType.NEUTRAL,
                text="The light shines, a little late. The ships make it, just.",
            ),
            EndingSceneInput(
                ending_type=EndingType.BAD,
                text="The storm arrives before the light is ready. Better luck next time.",
            ),
        ],
    )


def seed_demo_story(manager: DatabaseManager) -> Optional[Story]:
    """
    Insert the demo story if the database has no stories yet.

    Returns:
        The created story, or None if stories already exist
    """
    catalogue = StoryCatalogue(manager)
    with manager.transaction() as tx:
        if tx.stories.list_stories():
            logger.debug("Stories present, skipping demo content")
            return None

    story = catalogue.create_story(
        owner_id=DEMO_OWNER_ID,
        title="The Lighthouse Keeper",
        description="Help Mira get the lighthouse ready before the storm.",
        difficulty=DifficultyLevel.EASY,
        accessibility=Accessibility.PUBLIC,
        content=demo_story_content(),
    )
    logger.info(f"Seeded demo story {story.id}")
    return story
