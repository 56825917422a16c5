"""
Database manager for storyplay.

This module provides the SQLite-backed store used by the playing engine:
a DatabaseManager that owns the engine and hands out units of work, and the
repository classes bound to each unit of work.
"""

import os
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, desc, event, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import selectinload, sessionmaker

from storyplay.db.schema import (
    AnswerOptionRecord,
    Base,
    EndingSceneRecord,
    IntroSceneRecord,
    PendingAnswerRecord,
    PlayingSessionRecord,
    QuestionSceneRecord,
    StoryRecord,
)
from storyplay.engine.repositories import (
    ContentRepository,
    PendingAnswerRepository,
    SessionRepository,
    Store,
    StoryRepository,
    StoryStatsRepository,
    StoreTransaction,
)
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
    StoryStats,
)
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)


# ==================== Record conversion ====================


def _to_story(record: StoryRecord) -> Story:
    return Story(
        id=record.id,
        title=record.title,
        description=record.description or "",
        difficulty=record.difficulty,
        accessibility=record.accessibility,
        code=record.code,
        owner_id=record.owner_id,
        stats=StoryStats(
            played=record.played, finished=record.finished, failed=record.failed
        ),
        created_at=record.created_at,
    )


def _to_option(record: AnswerOptionRecord) -> AnswerOption:
    return AnswerOption(
        id=record.id,
        question_scene_id=record.question_scene_id,
        text=record.text,
        feedback_text=record.feedback_text or "",
        is_correct=record.is_correct,
    )


def _to_question(record: QuestionSceneRecord) -> QuestionScene:
    return QuestionScene(
        id=record.id,
        story_id=record.story_id,
        text=record.text,
        question=record.question,
        next_question_scene_id=record.next_question_scene_id,
        options=[_to_option(option) for option in record.options],
    )


def _to_ending(record: EndingSceneRecord) -> EndingScene:
    return EndingScene(
        id=record.id,
        story_id=record.story_id,
        ending_type=record.ending_type,
        text=record.text,
    )


def _to_session(record: PlayingSessionRecord) -> PlayingSession:
    return PlayingSession(
        id=record.id,
        story_id=record.story_id,
        user_id=record.user_id,
        start_time=record.start_time,
        score=record.score,
        max_score=record.max_score,
        level=record.level,
        current_scene_id=record.current_scene_id,
        current_scene_type=record.current_scene_type,
        finished=record.finished,
        finished_at=record.finished_at,
    )


def _option_records(scene: QuestionSceneInput) -> List[AnswerOptionRecord]:
    return [
        AnswerOptionRecord(
            text=option.text,
            feedback_text=option.feedback_text,
            is_correct=option.is_correct,
        )
        for option in scene.options
    ]


def _to_pending(record: PendingAnswerRecord) -> PendingTransition:
    return PendingTransition(
        session_id=record.session_id,
        token=record.token,
        question_scene_id=record.question_scene_id,
        answer_option_id=record.answer_option_id,
        score=record.score,
        level=record.level,
        next_question_scene_id=record.next_question_scene_id,
        feedback_text=record.feedback_text or "",
        issued_at=record.issued_at,
    )


# ==================== Repositories ====================


class SqlContentRepository(ContentRepository):
    """Scene graph reads"""

    def __init__(self, db: DBSession):
        self.db = db

    def get_intro_scene(self, story_id: int) -> Optional[IntroScene]:
        record = (
            self.db.query(IntroSceneRecord)
            .filter(IntroSceneRecord.story_id == story_id)
            .first()
        )
        if record is None:
            return None
        return IntroScene(id=record.id, story_id=record.story_id, text=record.text)

    def get_question_scene_with_options(self, scene_id: int) -> Optional[QuestionScene]:
        record = (
            self.db.query(QuestionSceneRecord)
            .options(selectinload(QuestionSceneRecord.options))
            .filter(QuestionSceneRecord.id == scene_id)
            .first()
        )
        return _to_question(record) if record else None

    def get_question_chain(self, story_id: int) -> QuestionChain:
        links = (
            self.db.query(
                QuestionSceneRecord.id, QuestionSceneRecord.next_question_scene_id
            )
            .filter(QuestionSceneRecord.story_id == story_id)
            .all()
        )
        return QuestionChain((row[0], row[1]) for row in links)

    def get_first_question_scene(self, story_id: int) -> Optional[QuestionScene]:
        head = self.get_question_chain(story_id).head
        if head is None:
            return None
        return self.get_question_scene_with_options(head)

    def get_next_question_scene(self, scene_id: int) -> Optional[QuestionScene]:
        next_id = (
            self.db.query(QuestionSceneRecord.next_question_scene_id)
            .filter(QuestionSceneRecord.id == scene_id)
            .scalar()
        )
        if next_id is None:
            return None
        return self.get_question_scene_with_options(next_id)

    def get_ending_scene(
        self, story_id: int, ending_type: EndingType
    ) -> Optional[EndingScene]:
        record = (
            self.db.query(EndingSceneRecord)
            .filter(
                EndingSceneRecord.story_id == story_id,
                EndingSceneRecord.ending_type == EndingType(ending_type).value,
            )
            .first()
        )
        return _to_ending(record) if record else None

    def get_ending_scene_by_id(self, scene_id: int) -> Optional[EndingScene]:
        record = self.db.get(EndingSceneRecord, scene_id)
        return _to_ending(record) if record else None

    def get_answer_option(self, option_id: int) -> Optional[AnswerOption]:
        record = self.db.get(AnswerOptionRecord, option_id)
        return _to_option(record) if record else None

    def get_question_count(self, story_id: int) -> Optional[int]:
        if self.db.get(StoryRecord, story_id) is None:
            return None
        return (
            self.db.query(func.count(QuestionSceneRecord.id))
            .filter(QuestionSceneRecord.story_id == story_id)
            .scalar()
        )


class SqlSessionRepository(SessionRepository):
    """Playing session persistence"""

    def __init__(self, db: DBSession):
        self.db = db

    def create_session(self, session: PlayingSession) -> bool:
        record = PlayingSessionRecord(
            story_id=session.story_id,
            user_id=session.user_id,
            start_time=session.start_time,
            score=session.score,
            max_score=session.max_score,
            level=session.level,
            current_scene_id=session.current_scene_id,
            current_scene_type=SceneType(session.current_scene_type).value,
            finished=False,
        )
        try:
            self.db.add(record)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create playing session: {e}")
            return False

        session.id = record.id
        logger.debug(f"Created playing session {record.id} for story {record.story_id}")
        return True

    def get_session(self, session_id: int) -> Optional[PlayingSession]:
        record = self.db.get(PlayingSessionRecord, session_id)
        return _to_session(record) if record else None

    def advance_session(
        self,
        session_id: int,
        next_scene_id: int,
        next_scene_type: SceneType,
        score: int,
        level: int,
    ) -> bool:
        record = self.db.get(PlayingSessionRecord, session_id)
        if record is None or record.finished:
            return False
        record.current_scene_id = next_scene_id
        record.current_scene_type = SceneType(next_scene_type).value
        record.score = score
        record.level = level
        return self._flush(f"advance session {session_id}")

    def finish_session(self, session_id: int, score: int, level: int) -> bool:
        record = self.db.get(PlayingSessionRecord, session_id)
        if record is None or record.finished:
            return False
        record.score = score
        record.level = level
        record.finished = True
        record.finished_at = datetime.utcnow()
        return self._flush(f"finish session {session_id}")

    def list_sessions(self, limit: int = 50) -> List[PlayingSession]:
        records = (
            self.db.query(PlayingSessionRecord)
            .order_by(desc(PlayingSessionRecord.start_time))
            .limit(limit)
            .all()
        )
        return [_to_session(record) for record in records]

    def recent_story_ids(self, user_id: str, limit: int = 5) -> List[int]:
        last_started = func.max(PlayingSessionRecord.start_time)
        rows = (
            self.db.query(PlayingSessionRecord.story_id, last_started)
            .filter(PlayingSessionRecord.user_id == user_id)
            .group_by(PlayingSessionRecord.story_id)
            .order_by(desc(last_started))
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    def _flush(self, action: str) -> bool:
        try:
            self.db.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            return False


class SqlStoryStatsRepository(StoryStatsRepository):
    """Story counters, updated in place"""

    def __init__(self, db: DBSession):
        self.db = db

    def increment_played(self, story_id: int) -> bool:
        return self._increment(story_id, StoryRecord.played)

    def increment_finished(self, story_id: int) -> bool:
        return self._increment(story_id, StoryRecord.finished)

    def increment_failed(self, story_id: int) -> bool:
        return self._increment(story_id, StoryRecord.failed)

    def _increment(self, story_id: int, column) -> bool:
        try:
            updated = (
                self.db.query(StoryRecord)
                .filter(StoryRecord.id == story_id)
                .update({column: column + 1}, synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to increment {column.key} for story {story_id}: {e}")
            return False
        return updated == 1


class SqlStoryRepository(StoryRepository):
    """Story catalogue and authoring"""

    def __init__(self, db: DBSession):
        self.db = db

    def get_story(self, story_id: int) -> Optional[Story]:
        record = self.db.get(StoryRecord, story_id)
        return _to_story(record) if record else None

    def list_stories(
        self,
        accessibility: Optional[Accessibility] = None,
        search: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> List[Story]:
        query = self.db.query(StoryRecord)
        if accessibility is not None:
            query = query.filter(
                StoryRecord.accessibility == Accessibility(accessibility).value
            )
        if search:
            query = query.filter(StoryRecord.title.ilike(f"%{search}%"))
        if owner_id is not None:
            query = query.filter(StoryRecord.owner_id == owner_id)

        records = query.order_by(desc(StoryRecord.created_at), desc(StoryRecord.id)).all()
        return [_to_story(record) for record in records]

    def get_stories(self, story_ids: List[int]) -> List[Story]:
        if not story_ids:
            return []
        records = self.db.query(StoryRecord).filter(StoryRecord.id.in_(story_ids)).all()
        by_id = {record.id: record for record in records}
        return [_to_story(by_id[story_id]) for story_id in story_ids if story_id in by_id]

    def find_private_story_by_code(self, code: str) -> Optional[Story]:
        record = (
            self.db.query(StoryRecord)
            .filter(
                StoryRecord.code == code,
                StoryRecord.accessibility == Accessibility.PRIVATE.value,
            )
            .first()
        )
        return _to_story(record) if record else None

    def code_exists(self, code: str) -> bool:
        return (
            self.db.query(StoryRecord.id).filter(StoryRecord.code == code).first()
            is not None
        )

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
        """
        Insert a story with its whole scene graph.

        Question scenes are linked in the order they appear in `content`.
        """
        try:
            story = StoryRecord(
                title=title,
                description=description,
                difficulty=str(getattr(difficulty, "value", difficulty)),
                accessibility=Accessibility(accessibility).value,
                code=code,
                owner_id=owner_id,
                created_at=datetime.utcnow(),
            )
            self.db.add(story)
            self.db.flush()

            self.db.add(IntroSceneRecord(story_id=story.id, text=content.intro_text))

            scenes = []
            for question in content.questions:
                scene = QuestionSceneRecord(
                    story_id=story.id, text=question.text, question=question.question
                )
                scene.options = _option_records(question)
                self.db.add(scene)
                scenes.append(scene)
            self.db.flush()

            for scene, following in zip(scenes, scenes[1:]):
                scene.next_question_scene_id = following.id

            for ending in content.endings:
                self.db.add(
                    EndingSceneRecord(
                        story_id=story.id,
                        ending_type=ending.ending_type.value,
                        text=ending.text,
                    )
                )
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to add story '{title}': {e}")
            return None

        logger.debug(f"Added story {story.id} with {len(scenes)} question scenes")
        return _to_story(story)

    def set_accessibility(
        self, story_id: int, accessibility: Accessibility, code: Optional[str]
    ) -> bool:
        record = self.db.get(StoryRecord, story_id)
        if record is None:
            return False
        record.accessibility = Accessibility(accessibility).value
        record.code = code
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update accessibility of story {story_id}: {e}")
            return False
        return True

    def update_story(
        self, story_id: int, title: str, description: str, difficulty: str
    ) -> bool:
        record = self.db.get(StoryRecord, story_id)
        if record is None:
            return False
        record.title = title
        record.description = description
        record.difficulty = str(getattr(difficulty, "value", difficulty))
        return self._flush(f"update story {story_id}")

    def delete_story(self, story_id: int) -> bool:
        record = self.db.get(StoryRecord, story_id)
        if record is None:
            return False
        try:
            self.db.delete(record)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete story {story_id}: {e}")
            return False
        return True

    def update_intro_scene(self, story_id: int, text: str) -> Optional[IntroScene]:
        record = (
            self.db.query(IntroSceneRecord)
            .filter(IntroSceneRecord.story_id == story_id)
            .first()
        )
        if record is None:
            return None
        record.text = text
        if not self._flush(f"update intro scene of story {story_id}"):
            return None
        return IntroScene(id=record.id, story_id=record.story_id, text=record.text)

    def update_question_scene(
        self, scene_id: int, scene: QuestionSceneInput
    ) -> Optional[QuestionScene]:
        record = self.db.get(QuestionSceneRecord, scene_id)
        if record is None:
            return None
        record.text = scene.text
        record.question = scene.question
        # delete-orphan removes the options that are replaced
        record.options = _option_records(scene)
        if not self._flush(f"update question scene {scene_id}"):
            return None
        return _to_question(record)

    def add_question_scene(
        self, story_id: int, scene: QuestionSceneInput
    ) -> Optional[QuestionScene]:
        record = QuestionSceneRecord(
            story_id=story_id, text=scene.text, question=scene.question
        )
        record.options = _option_records(scene)
        self.db.add(record)
        if not self._flush(f"add question scene to story {story_id}"):
            return None
        return _to_question(record)

    def update_ending_scene(
        self, story_id: int, ending_type: EndingType, text: str
    ) -> Optional[EndingScene]:
        record = (
            self.db.query(EndingSceneRecord)
            .filter(
                EndingSceneRecord.story_id == story_id,
                EndingSceneRecord.ending_type == EndingType(ending_type).value,
            )
            .first()
        )
        if record is None:
            return None
        record.text = text
        if not self._flush(f"update {EndingType(ending_type).value} ending of story {story_id}"):
            return None
        return _to_ending(record)

    def find_previous_question_scene(self, scene_id: int) -> Optional[int]:
        return (
            self.db.query(QuestionSceneRecord.id)
            .filter(QuestionSceneRecord.next_question_scene_id == scene_id)
            .scalar()
        )

    def set_next_question_scene(self, scene_id: int, next_id: Optional[int]) -> bool:
        record = self.db.get(QuestionSceneRecord, scene_id)
        if record is None:
            return False
        record.next_question_scene_id = next_id
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to relink question scene {scene_id}: {e}")
            return False
        return True

    def delete_question_scene(self, scene_id: int) -> bool:
        record = self.db.get(QuestionSceneRecord, scene_id)
        if record is None:
            return False
        try:
            (
                self.db.query(QuestionSceneRecord)
                .filter(QuestionSceneRecord.next_question_scene_id == scene_id)
                .update(
                    {QuestionSceneRecord.next_question_scene_id: None},
                    synchronize_session="fetch",
                )
            )
            self.db.delete(record)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete question scene {scene_id}: {e}")
            return False
        return True

    def _flush(self, action: str) -> bool:
        try:
            self.db.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            return False


class SqlPendingAnswerRepository(PendingAnswerRepository):
    """Staged answers, one row per session"""

    def __init__(self, db: DBSession):
        self.db = db

    def stage_pending(self, pending: PendingTransition) -> bool:
        record = self.db.get(PendingAnswerRecord, pending.session_id)
        if record is None:
            record = PendingAnswerRecord(session_id=pending.session_id)
            self.db.add(record)
        record.token = pending.token
        record.question_scene_id = pending.question_scene_id
        record.answer_option_id = pending.answer_option_id
        record.score = pending.score
        record.level = pending.level
        record.next_question_scene_id = pending.next_question_scene_id
        record.feedback_text = pending.feedback_text
        record.issued_at = pending.issued_at
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to stage answer for session {pending.session_id}: {e}")
            return False
        return True

    def get_pending(self, session_id: int) -> Optional[PendingTransition]:
        record = self.db.get(PendingAnswerRecord, session_id)
        return _to_pending(record) if record else None

    def clear_pending(self, session_id: int) -> bool:
        try:
            (
                self.db.query(PendingAnswerRecord)
                .filter(PendingAnswerRecord.session_id == session_id)
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to clear pending answer of session {session_id}: {e}")
            return False
        return True


# ==================== Store ====================


class SqlStoreTransaction(StoreTransaction):
    """Repositories sharing one SQLAlchemy session"""

    def __init__(self, db: DBSession):
        self.db = db
        self.content = SqlContentRepository(db)
        self.sessions = SqlSessionRepository(db)
        self.stats = SqlStoryStatsRepository(db)
        self.stories = SqlStoryRepository(db)
        self.pending = SqlPendingAnswerRepository(db)


class DatabaseManager(Store):
    """
    Manages the SQLite database for stories and playing sessions.

    Attributes:
        db_path: Path to the SQLite database file
        engine: SQLAlchemy engine for database connections
        SessionLocal: Factory for creating database sessions
    """

    def __init__(self, db_path: str = "data/storyplay.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file (created if doesn't exist)
        """
        self.db_path = db_path

        # Ensure data directory exists
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={"check_same_thread": False},  # Allow multi-threading
        )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        logger.info(f"Database initialized at {db_path}")

    @contextmanager
    def transaction(self) -> Iterator[SqlStoreTransaction]:
        """
        Unit of work over all repositories.

        Commits when the block exits normally, rolls back if it raises.
        """
        db: DBSession = self.SessionLocal()
        try:
            yield SqlStoreTransaction(db)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
