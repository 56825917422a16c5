"""
Database schema definitions using SQLAlchemy.

This module defines the tables for stories, their scene graph and playing
sessions. All data is stored in a single SQLite database file.
"""

# mypy: ignore-errors

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()  # type: ignore


class StoryRecord(Base):
    """
    Story table.

    Attributes:
        id: Story identifier
        title: Story title
        description: Short description shown in listings
        difficulty: Author-chosen difficulty label (display only)
        accessibility: "public" or "private"
        code: Access code, set only while the story is private
        owner_id: Id of the author
        played/finished/failed: Lifetime counters kept by the playing engine
    """

    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String, nullable=False, default="medium")
    accessibility = Column(String, nullable=False, default="public")
    code = Column(String, nullable=True, unique=True)
    owner_id = Column(String, nullable=False, index=True)
    played = Column(Integer, nullable=False, default=0)
    finished = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    intro_scene = relationship(
        "IntroSceneRecord",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    question_scenes = relationship(
        "QuestionSceneRecord", cascade="all, delete-orphan", passive_deletes=True
    )
    ending_scenes = relationship(
        "EndingSceneRecord", cascade="all, delete-orphan", passive_deletes=True
    )


class IntroSceneRecord(Base):
    __tablename__ = "intro_scenes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(
        Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    text = Column(Text, nullable=False)


class QuestionSceneRecord(Base):
    """
    Question scene table.

    Question scenes of a story form a singly linked list through
    next_question_scene_id; NULL marks the last question. Deleting a scene
    clears the link of the scene pointing at it.
    """

    __tablename__ = "question_scenes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(
        Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text = Column(Text, nullable=False)
    question = Column(Text, nullable=False)
    next_question_scene_id = Column(
        Integer,
        ForeignKey("question_scenes.id", ondelete="SET NULL"),
        nullable=True,
    )

    options = relationship(
        "AnswerOptionRecord",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AnswerOptionRecord.id",
    )


class EndingSceneRecord(Base):
    __tablename__ = "ending_scenes"
    __table_args__ = (UniqueConstraint("story_id", "ending_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(
        Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ending_type = Column(String, nullable=False)
    text = Column(Text, nullable=False)


class AnswerOptionRecord(Base):
    __tablename__ = "answer_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_scene_id = Column(
        Integer,
        ForeignKey("question_scenes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    feedback_text = Column(Text, nullable=False, default="")
    is_correct = Column(Boolean, nullable=False, default=False)


class PlayingSessionRecord(Base):
    """
    Playing session table.

    Sessions reference their story and user by id only; they are not owned
    by the story.
    """

    __tablename__ = "playing_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    score = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=3)
    current_scene_id = Column(Integer, nullable=False)
    current_scene_type = Column(String, nullable=False)
    finished = Column(Boolean, nullable=False, default=False)
    finished_at = Column(DateTime, nullable=True)


class PendingAnswerRecord(Base):
    """
    Answer staged between a question and the acknowledgement of its feedback.

    At most one per session. The row is removed when the feedback is
    acknowledged; an expired row is replaced by the next answer.
    """

    __tablename__ = "pending_answers"

    session_id = Column(
        Integer,
        ForeignKey("playing_sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    token = Column(String, nullable=False)
    question_scene_id = Column(Integer, nullable=False)
    answer_option_id = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)
    level = Column(Integer, nullable=False)
    next_question_scene_id = Column(Integer, nullable=True)
    feedback_text = Column(Text, nullable=False, default="")
    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
