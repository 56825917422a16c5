"""
Story content schema definitions

A story owns one intro scene, an ordered chain of question scenes (each with
its answer options) and exactly one ending scene per ending type.
"""

from datetime import datetime
from enum import Enum
from typing import (
    Annotated,
    Dict,
    Iterable,
    Iterator,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import BaseModel, Field, field_validator, model_validator

from storyplay.errors import DataIntegrityError


class Accessibility(str, Enum):
    """Who may play a story"""

    PUBLIC = "public"
    PRIVATE = "private"


class DifficultyLevel(str, Enum):
    """Author-chosen difficulty label, display only"""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SceneType(str, Enum):
    INTRO = "intro"
    QUESTION = "question"
    ENDING = "ending"


class EndingType(str, Enum):
    GOOD = "good"
    NEUTRAL = "neutral"
    BAD = "bad"


# ==================== Scene graph ====================


class AnswerOption(BaseModel):
    """One selectable answer belonging to a question scene"""

    id: int
    question_scene_id: int
    text: str
    feedback_text: str = Field(..., description="Narrative shown after choosing")
    is_correct: bool


class IntroScene(BaseModel):
    kind: Literal["intro"] = "intro"
    id: int
    story_id: int
    text: str


class QuestionScene(BaseModel):
    kind: Literal["question"] = "question"
    id: int
    story_id: int
    text: str
    question: str
    next_question_scene_id: Optional[int] = None
    options: List[AnswerOption] = Field(default_factory=list)


class EndingScene(BaseModel):
    kind: Literal["ending"] = "ending"
    id: int
    story_id: int
    ending_type: EndingType
    text: str


Scene = Annotated[
    Union[IntroScene, QuestionScene, EndingScene], Field(discriminator="kind")
]


class QuestionChain:
    """
    Ordered view over a story's question scenes.

    Built from (id, next id) links and stored as an id-indexed arena plus an
    explicit order. Construction fails with DataIntegrityError unless the
    links form exactly one acyclic path covering every scene.
    """

    def __init__(self, links: Iterable[tuple]):
        self._next: Dict[int, Optional[int]] = {}
        for scene_id, next_id in links:
            if scene_id in self._next:
                raise DataIntegrityError(f"Question scene {scene_id} appears twice")
            self._next[scene_id] = next_id

        if not self._next:
            self._order: List[int] = []
            self._index: Dict[int, int] = {}
            return

        referenced = set()
        for scene_id, next_id in self._next.items():
            if next_id is None:
                continue
            if next_id not in self._next:
                raise DataIntegrityError(
                    f"Question scene {scene_id} points at unknown scene {next_id}"
                )
            if next_id in referenced:
                raise DataIntegrityError(
                    f"Question scene {next_id} is the next scene of more than one scene"
                )
            referenced.add(next_id)

        heads = [scene_id for scene_id in self._next if scene_id not in referenced]
        if len(heads) != 1:
            raise DataIntegrityError(
                f"Question chain must have exactly one first scene, found {len(heads)}"
            )

        order = []
        seen = set()
        current: Optional[int] = heads[0]
        while current is not None:
            if current in seen:
                raise DataIntegrityError(f"Question chain loops at scene {current}")
            seen.add(current)
            order.append(current)
            current = self._next[current]

        if len(order) != len(self._next):
            raise DataIntegrityError("Question chain leaves some scenes unreachable")

        self._order = order
        self._index = {scene_id: i for i, scene_id in enumerate(order)}

    @property
    def head(self) -> Optional[int]:
        return self._order[0] if self._order else None

    @property
    def order(self) -> List[int]:
        return list(self._order)

    def next_of(self, scene_id: int) -> Optional[int]:
        return self._next[scene_id]

    def position_of(self, scene_id: int) -> int:
        """Zero-based position of a scene in the chain"""
        return self._index[scene_id]

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._next

    def __iter__(self) -> Iterator[int]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)


# ==================== Authoring input ====================


class AnswerOptionInput(BaseModel):
    text: str = Field(..., min_length=1)
    feedback_text: str = Field(default="")
    is_correct: bool = False


class QuestionSceneInput(BaseModel):
    text: str = Field(..., min_length=1, description="Story text shown above the question")
    question: str = Field(..., min_length=1)
    options: List[AnswerOptionInput] = Field(..., min_length=2)

    @field_validator("options")
    @classmethod
    def validate_options(cls, v):
        correct = sum(1 for option in v if option.is_correct)
        if correct != 1:
            raise ValueError(
                f"A question needs exactly one correct answer option, got {correct}"
            )
        return v


class EndingSceneInput(BaseModel):
    ending_type: EndingType
    text: str = Field(..., min_length=1)


class StoryContent(BaseModel):
    """Complete scene graph submitted when a story is created"""

    intro_text: str = Field(..., min_length=1)
    questions: List[QuestionSceneInput] = Field(..., min_length=1)
    endings: List[EndingSceneInput] = Field(..., min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_endings(self):
        types = [ending.ending_type for ending in self.endings]
        missing = [t.value for t in EndingType if t not in types]
        if missing or len(set(types)) != len(types):
            raise ValueError(
                "A story needs exactly one good, one neutral and one bad ending"
                + (f" (missing: {', '.join(missing)})" if missing else "")
            )
        return self


# ==================== Story ====================


class StoryStats(BaseModel):
    """Lifetime counters, mutated only by the playing engine"""

    played: int = 0
    finished: int = 0
    failed: int = 0

    @property
    def did_not_finish(self) -> int:
        return max(self.played - self.finished - self.failed, 0)


class Story(BaseModel):
    id: int
    title: str
    description: str = ""
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    accessibility: Accessibility = Accessibility.PUBLIC
    code: Optional[str] = None
    owner_id: str
    stats: StoryStats = Field(default_factory=StoryStats)
    created_at: Optional[datetime] = None

    def public_view(self) -> dict:
        """Story data without the access code"""
        data = self.model_dump(mode="json", exclude={"code"})
        data["stats"]["did_not_finish"] = self.stats.did_not_finish
        return data
