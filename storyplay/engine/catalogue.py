"""
Story catalogue: authoring, listing and management of stories.

Thin layer over the story repository that applies ownership rules and
access code handling. Playing itself lives in player.py.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from storyplay.config import Settings, settings
from storyplay.engine.access import generate_code, normalize_code
from storyplay.engine.repositories import Store, StoreTransaction
from storyplay.errors import (
    AccessDeniedError,
    InvalidArgument,
    NotFoundError,
    PersistenceError,
)
from storyplay.schemas import (
    Accessibility,
    DifficultyLevel,
    EndingScene,
    EndingType,
    IntroScene,
    PlayingSession,
    QuestionScene,
    QuestionSceneInput,
    Story,
    StoryContent,
)
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)


class StoryCatalogue:
    """Create, find and manage stories"""

    def __init__(self, store: Store, config: Optional[Settings] = None):
        self.store = store
        self.config = config or settings

    # ==================== Authoring ====================

    def create_story(
        self,
        owner_id: str,
        title: str,
        content: StoryContent,
        description: str = "",
        difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        accessibility: Accessibility = Accessibility.PUBLIC,
    ) -> Story:
        """
        Create a story together with its full scene graph.

        Private stories get a freshly generated unique access code.
        """
        if not title or not title.strip():
            raise InvalidArgument("A story needs a title.")

        with self.store.transaction() as tx:
            code = None
            if Accessibility(accessibility) == Accessibility.PRIVATE:
                code = self._unique_code(tx)

            story = tx.stories.add_story(
                owner_id=owner_id,
                title=title.strip(),
                description=description,
                difficulty=DifficultyLevel(difficulty).value,
                accessibility=accessibility,
                code=code,
                content=content,
            )
            if story is None:
                raise PersistenceError("Could not save the story.")

        logger.info(
            f"[Catalogue] Story {story.id} created by {owner_id}: "
            f"'{story.title}' ({len(content.questions)} questions, {story.accessibility.value})"
        )
        return story

    def set_accessibility(
        self, story_id: int, owner_id: str, accessibility: Accessibility
    ) -> Story:
        """
        Make a story public or private.

        Switching to private generates a new code; switching to public clears it.
        Setting the accessibility a story already has changes nothing.
        """
        with self.store.transaction() as tx:
            story = self._require_story(tx, story_id)
            if story.owner_id != owner_id:
                raise AccessDeniedError("Only the author can change who may play this story.")

            accessibility = Accessibility(accessibility)
            if story.accessibility == accessibility:
                return story

            code = self._unique_code(tx) if accessibility == Accessibility.PRIVATE else None
            if not tx.stories.set_accessibility(story_id, accessibility, code):
                raise PersistenceError("Could not update the story.")

        logger.info(f"[Catalogue] Story {story_id} is now {accessibility.value}")
        return story.model_copy(update={"accessibility": accessibility, "code": code})

    def update_story(
        self,
        story_id: int,
        requester_id: str,
        title: str,
        description: str = "",
        difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        is_admin: bool = False,
    ) -> Story:
        """Change the title, description and difficulty of a story."""
        if not title or not title.strip():
            raise InvalidArgument("A story needs a title.")

        with self.store.transaction() as tx:
            story = self._require_editable(tx, story_id, requester_id, is_admin)
            difficulty = DifficultyLevel(difficulty)
            if not tx.stories.update_story(
                story_id, title.strip(), description, difficulty.value
            ):
                raise PersistenceError("Could not update the story.")

        logger.info(f"[Catalogue] Story {story_id} details updated by {requester_id}")
        return story.model_copy(
            update={
                "title": title.strip(),
                "description": description,
                "difficulty": difficulty,
            }
        )

    def update_intro_scene(
        self, story_id: int, requester_id: str, text: str, is_admin: bool = False
    ) -> IntroScene:
        if not text or not text.strip():
            raise InvalidArgument("The introduction cannot be empty.")

        with self.store.transaction() as tx:
            self._require_editable(tx, story_id, requester_id, is_admin)
            intro = tx.stories.update_intro_scene(story_id, text)
            if intro is None:
                logger.warning(f"[Catalogue] Story {story_id} has no intro scene to update")
                raise NotFoundError("This story has no introduction scene.")

        logger.info(f"[Catalogue] Intro scene of story {story_id} updated")
        return intro

    def update_question_scene(
        self,
        scene_id: int,
        requester_id: str,
        scene: QuestionSceneInput,
        is_admin: bool = False,
    ) -> QuestionScene:
        """
        Replace the text, question and answer options of a question scene.

        The scene keeps its place in the chain. Its previous options are
        removed, so answers staged against them can no longer be confirmed.
        """
        scene = self._validated(scene)

        with self.store.transaction() as tx:
            existing = tx.content.get_question_scene_with_options(scene_id)
            if existing is None:
                raise NotFoundError("Question not found.")
            self._require_editable(tx, existing.story_id, requester_id, is_admin)
            updated = tx.stories.update_question_scene(scene_id, scene)
            if updated is None:
                raise PersistenceError("Could not update the question.")

        logger.info(
            f"[Catalogue] Question scene {scene_id} of story {existing.story_id} "
            f"updated ({len(updated.options)} options)"
        )
        return updated

    def add_question_scene(
        self,
        story_id: int,
        requester_id: str,
        scene: QuestionSceneInput,
        is_admin: bool = False,
    ) -> QuestionScene:
        """
        Append a question scene after the story's last question.

        Sessions already started keep the maximum score they started with.
        """
        scene = self._validated(scene)

        with self.store.transaction() as tx:
            self._require_editable(tx, story_id, requester_id, is_admin)
            chain = tx.content.get_question_chain(story_id)
            tail = chain.order[-1] if len(chain) else None

            added = tx.stories.add_question_scene(story_id, scene)
            if added is None:
                raise PersistenceError("Could not add the question.")
            if tail is not None and not tx.stories.set_next_question_scene(tail, added.id):
                raise PersistenceError("Could not link the new question.")

        logger.info(
            f"[Catalogue] Question scene {added.id} appended to story {story_id} "
            f"after {tail}"
        )
        return added

    def update_ending_scene(
        self,
        story_id: int,
        requester_id: str,
        ending_type: EndingType,
        text: str,
        is_admin: bool = False,
    ) -> EndingScene:
        if not text or not text.strip():
            raise InvalidArgument("An ending cannot be empty.")

        ending_type = EndingType(ending_type)
        with self.store.transaction() as tx:
            self._require_editable(tx, story_id, requester_id, is_admin)
            ending = tx.stories.update_ending_scene(story_id, ending_type, text)
            if ending is None:
                logger.warning(
                    f"[Catalogue] Story {story_id} has no {ending_type.value} ending to update"
                )
                raise NotFoundError("This ending scene could not be found.")

        logger.info(f"[Catalogue] {ending_type.value} ending of story {story_id} updated")
        return ending

    def delete_story(self, story_id: int, requester_id: str, is_admin: bool = False) -> None:
        """Delete a story and everything it owns; author or admin only."""
        with self.store.transaction() as tx:
            story = self._require_story(tx, story_id)
            if story.owner_id != requester_id and not is_admin:
                logger.warning(
                    f"[Catalogue] Unauthorized delete attempt for story {story_id} by {requester_id}"
                )
                raise AccessDeniedError("You can only delete your own stories.")
            if not tx.stories.delete_story(story_id):
                raise PersistenceError("Could not delete the story.")

        logger.info(f"[Catalogue] Story {story_id} deleted by {requester_id}")

    def delete_question_scene(
        self, scene_id: int, requester_id: str, is_admin: bool = False
    ) -> None:
        """
        Delete one question scene.

        The storage layer clears the link pointing at the deleted scene; the
        predecessor is then linked to the deleted scene's successor so the
        story keeps a single unbroken chain.
        """
        with self.store.transaction() as tx:
            scene = tx.content.get_question_scene_with_options(scene_id)
            if scene is None:
                raise NotFoundError("Question not found.")
            story = self._require_editable(tx, scene.story_id, requester_id, is_admin)
            if len(tx.content.get_question_chain(story.id)) <= 1:
                raise InvalidArgument("A story needs at least one question.")

            previous_id = tx.stories.find_previous_question_scene(scene_id)
            if not tx.stories.delete_question_scene(scene_id):
                raise PersistenceError("Could not delete the question.")
            if previous_id is not None and not tx.stories.set_next_question_scene(
                previous_id, scene.next_question_scene_id
            ):
                raise PersistenceError("Could not relink the remaining questions.")

        logger.info(f"[Catalogue] Question scene {scene_id} removed from story {story.id}")

    # ==================== Browsing ====================

    def get_story(self, story_id: int) -> Story:
        with self.store.transaction() as tx:
            return self._require_story(tx, story_id)

    def list_public_stories(self, search: Optional[str] = None) -> List[Story]:
        """Public stories, optionally filtered by a case-insensitive title search."""
        with self.store.transaction() as tx:
            return tx.stories.list_stories(
                accessibility=Accessibility.PUBLIC, search=search or None
            )

    def list_private_stories(self) -> List[Story]:
        with self.store.transaction() as tx:
            return tx.stories.list_stories(accessibility=Accessibility.PRIVATE)

    def list_stories_by_owner(self, owner_id: str) -> List[Story]:
        with self.store.transaction() as tx:
            return tx.stories.list_stories(owner_id=owner_id)

    def find_private_story_by_code(self, code: Optional[str]) -> Story:
        """Join a private story by its code."""
        normalized = normalize_code(code, self.config.access_code_normalization)
        if not normalized:
            raise InvalidArgument("Please enter a code.")

        with self.store.transaction() as tx:
            story = tx.stories.find_private_story_by_code(normalized)
        if story is None:
            logger.warning("[Catalogue] No private story matches the submitted code")
            raise NotFoundError("No story found with that code.")
        return story

    def get_story_details(
        self, story_id: int, requester_id: str, is_admin: bool = False
    ) -> Dict[str, Any]:
        """Story with statistics and question count; author or admin only."""
        with self.store.transaction() as tx:
            story = self._require_story(tx, story_id)
            if story.owner_id != requester_id and not is_admin:
                raise AccessDeniedError(
                    "We cannot show you details about this story when you are not the owner."
                )
            question_count = tx.content.get_question_count(story_id) or 0

        details = story.public_view()
        details["code"] = story.code
        details["question_count"] = question_count
        return details

    def recently_played(self, user_id: str, limit: int = 5) -> List[Story]:
        with self.store.transaction() as tx:
            story_ids = tx.sessions.recent_story_ids(user_id, limit)
            return tx.stories.get_stories(story_ids)

    def list_sessions(self, limit: int = 50) -> List[PlayingSession]:
        with self.store.transaction() as tx:
            return tx.sessions.list_sessions(limit)

    # ==================== Helpers ====================

    def _require_story(self, tx: StoreTransaction, story_id: int) -> Story:
        story = tx.stories.get_story(story_id)
        if story is None:
            logger.warning(f"[Catalogue] Story {story_id} not found")
            raise NotFoundError("Story not found.")
        return story

    def _require_editable(
        self, tx: StoreTransaction, story_id: int, requester_id: str, is_admin: bool
    ) -> Story:
        story = self._require_story(tx, story_id)
        if story.owner_id != requester_id and not is_admin:
            logger.warning(
                f"[Catalogue] Unauthorized edit attempt for story {story_id} by {requester_id}"
            )
            raise AccessDeniedError("You can only edit your own stories.")
        return story

    def _validated(self, scene: QuestionSceneInput) -> QuestionSceneInput:
        """Run the question validators again; copies made with model_copy skip them."""
        try:
            return QuestionSceneInput.model_validate(scene.model_dump())
        except ValidationError as e:
            raise InvalidArgument(
                "Each question needs at least two answers and exactly one correct answer."
            ) from e

    def _unique_code(self, tx: StoreTransaction) -> str:
        return generate_code(self.config.access_code_length, exists=tx.stories.code_exists)
