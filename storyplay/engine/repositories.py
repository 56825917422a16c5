"""
Interfaces the playing engine consumes.

Content, session, pending answer and statistics storage live outside the
engine. Read operations return None when something is absent and write
operations return False when they could not be applied; the engine turns
both into errors. All repositories handed out by one Store transaction
commit or roll back together.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import List, Optional

from storyplay.schemas import (
    Accessibility,
    AnswerOption,
    EndingScene,
    EndingType,
    IntroScene,
    PendingTransition,
    PlayingSession,
    QuestionChain,
    QuestionScene,
    QuestionSceneInput,
    SceneType,
    Story,
    StoryContent,
)


class ContentRepository(ABC):
    """Read access to a story's scene graph"""

    @abstractmethod
    def get_intro_scene(self, story_id: int) -> Optional[IntroScene]:
        pass

    @abstractmethod
    def get_question_scene_with_options(self, scene_id: int) -> Optional[QuestionScene]:
        pass

    @abstractmethod
    def get_first_question_scene(self, story_id: int) -> Optional[QuestionScene]:
        pass

    @abstractmethod
    def get_next_question_scene(self, scene_id: int) -> Optional[QuestionScene]:
        """Scene linked as next of `scene_id`, or None for the last question"""

    @abstractmethod
    def get_ending_scene(
        self, story_id: int, ending_type: EndingType
    ) -> Optional[EndingScene]:
        pass

    @abstractmethod
    def get_ending_scene_by_id(self, scene_id: int) -> Optional[EndingScene]:
        pass

    @abstractmethod
    def get_answer_option(self, option_id: int) -> Optional[AnswerOption]:
        pass

    @abstractmethod
    def get_question_count(self, story_id: int) -> Optional[int]:
        pass

    @abstractmethod
    def get_question_chain(self, story_id: int) -> QuestionChain:
        """Validated chain of the story's question scenes"""


class SessionRepository(ABC):
    """Durable playing session records"""

    @abstractmethod
    def create_session(self, session: PlayingSession) -> bool:
        """Persist a new session and assign its id"""

    @abstractmethod
    def get_session(self, session_id: int) -> Optional[PlayingSession]:
        pass

    @abstractmethod
    def advance_session(
        self,
        session_id: int,
        next_scene_id: int,
        next_scene_type: SceneType,
        score: int,
        level: int,
    ) -> bool:
        pass

    @abstractmethod
    def finish_session(self, session_id: int, score: int, level: int) -> bool:
        pass

    @abstractmethod
    def list_sessions(self, limit: int = 50) -> List[PlayingSession]:
        pass

    @abstractmethod
    def recent_story_ids(self, user_id: str, limit: int = 5) -> List[int]:
        """Distinct stories the user started, most recent first"""


class StoryStatsRepository(ABC):
    """Lifetime counters of a story"""

    @abstractmethod
    def increment_played(self, story_id: int) -> bool:
        pass

    @abstractmethod
    def increment_finished(self, story_id: int) -> bool:
        pass

    @abstractmethod
    def increment_failed(self, story_id: int) -> bool:
        pass


class StoryRepository(ABC):
    """Story catalogue and authoring storage"""

    @abstractmethod
    def get_story(self, story_id: int) -> Optional[Story]:
        pass

    @abstractmethod
    def list_stories(
        self,
        accessibility: Optional[Accessibility] = None,
        search: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> List[Story]:
        pass

    @abstractmethod
    def get_stories(self, story_ids: List[int]) -> List[Story]:
        """Stories for the given ids, in the order of the ids"""

    @abstractmethod
    def find_private_story_by_code(self, code: str) -> Optional[Story]:
        pass

    @abstractmethod
    def code_exists(self, code: str) -> bool:
        pass

    @abstractmethod
    def add_story(
        self,
        owner_id: str,
        title: str,
        description: str,
        difficulty: str,
        accessibility: Accessibility,
        code: Optional[str],
        content: StoryContent,
    ) -> Optional[Story]:
        pass

    @abstractmethod
    def set_accessibility(
        self, story_id: int, accessibility: Accessibility, code: Optional[str]
    ) -> bool:
        pass

    @abstractmethod
    def update_story(
        self, story_id: int, title: str, description: str, difficulty: str
    ) -> bool:
        pass

    @abstractmethod
    def delete_story(self, story_id: int) -> bool:
        pass

    @abstractmethod
    def update_intro_scene(self, story_id: int, text: str) -> Optional[IntroScene]:
        pass

    @abstractmethod
    def update_question_scene(
        self, scene_id: int, scene: QuestionSceneInput
    ) -> Optional[QuestionScene]:
        """Replace text, question and the whole set of answer options"""

    @abstractmethod
    def add_question_scene(
        self, story_id: int, scene: QuestionSceneInput
    ) -> Optional[QuestionScene]:
        """Insert an unlinked question scene with its options"""

    @abstractmethod
    def update_ending_scene(
        self, story_id: int, ending_type: EndingType, text: str
    ) -> Optional[EndingScene]:
        pass

    @abstractmethod
    def find_previous_question_scene(self, scene_id: int) -> Optional[int]:
        """Id of the scene whose next link points at `scene_id`"""

    @abstractmethod
    def set_next_question_scene(self, scene_id: int, next_id: Optional[int]) -> bool:
        pass

    @abstractmethod
    def delete_question_scene(self, scene_id: int) -> bool:
        """Delete a scene with its options; referrers' next links become None"""


class PendingAnswerRepository(ABC):
    """Answers awaiting acknowledgement, at most one per session"""

    @abstractmethod
    def stage_pending(self, pending: PendingTransition) -> bool:
        """Store `pending`, replacing any earlier one of the same session"""

    @abstractmethod
    def get_pending(self, session_id: int) -> Optional[PendingTransition]:
        pass

    @abstractmethod
    def clear_pending(self, session_id: int) -> bool:
        """Remove the session's pending answer; succeeds when there is none"""


class StoreTransaction(ABC):
    """Repositories bound to one unit of work"""

    content: ContentRepository
    sessions: SessionRepository
    stats: StoryStatsRepository
    stories: StoryRepository
    pending: PendingAnswerRepository


class Store(ABC):
    """Factory for units of work"""

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Open a unit of work yielding a StoreTransaction.

        Writes made through it are committed when the block exits normally
        and rolled back if it raises.
        """
