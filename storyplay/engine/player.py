"""
Playing session state machine.

A session moves Intro -> Question -> (Feedback -> Question)* -> Feedback ->
Ending -> Finished. Intro, Question and Ending are positions stored on the
PlayingSession; Feedback is a staged answer kept beside the session until it
is acknowledged or expires, so a question cannot be answered twice. An
incorrect answer on level 1 finishes the session straight from Question.

Every transition runs inside one store transaction, so its reads and writes
(session row and story counters) either all apply or none do.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from storyplay.config import Settings, settings
from storyplay.engine.access import codes_match
from storyplay.engine.endings import resolve_ending
from storyplay.engine.repositories import Store, StoreTransaction
from storyplay.engine.scoring import score_and_level
from storyplay.engine.selector import Seed, new_seed, select_options
from storyplay.errors import (
    AnswerRequiredError,
    InvalidArgument,
    InvalidCodeError,
    InvalidStateError,
    MissingContentError,
    NotFoundError,
    PersistenceError,
)
from storyplay.schemas import (
    Accessibility,
    AnswerResult,
    FeedbackView,
    OptionView,
    PendingTransition,
    PlayingSession,
    PlayState,
    SceneType,
    SceneView,
    SessionSummary,
    Story,
)
from storyplay.utils.logger import get_logger

logger = get_logger(__name__)

_STATE_BY_SCENE_TYPE = {
    SceneType.INTRO: PlayState.INTRO,
    SceneType.QUESTION: PlayState.QUESTION,
    SceneType.ENDING: PlayState.ENDING,
}


_PENDING_FIELDS = (
    "token",
    "question_scene_id",
    "answer_option_id",
    "score",
    "level",
    "next_question_scene_id",
)


def state_of(
    session: PlayingSession, pending: Optional[PendingTransition] = None
) -> PlayState:
    """State of a session given its unexpired pending answer, if any."""
    if session.finished:
        return PlayState.FINISHED
    if pending is not None:
        return PlayState.FEEDBACK
    return _STATE_BY_SCENE_TYPE[SceneType(session.current_scene_type)]


class StoryPlayer:
    """
    Drives players through stories.

    Attributes:
        store: Storage for content, sessions and story counters
        config: Gameplay settings (starting level, scoring, thresholds, codes)
    """

    def __init__(self, store: Store, config: Optional[Settings] = None):
        self.store = store
        self.config = config or settings

    # ==================== Start ====================

    def start_story(
        self, story_id: int, user_id: str, code: Optional[str] = None
    ) -> PlayingSession:
        """
        Start a new playing session positioned at the story's intro scene.

        Private stories require the access code. The story's played counter
        and the new session are written together.

        Raises:
            NotFoundError: Story or intro scene missing
            InvalidCodeError: Private story and the code does not match
            DataIntegrityError: The question chain is malformed
            PersistenceError: A write failed
        """
        logger.info(f"[Play] Start requested: story={story_id} user={user_id}")

        with self.store.transaction() as tx:
            story = self._require_story(tx, story_id)

            if Accessibility(story.accessibility) == Accessibility.PRIVATE:
                if not codes_match(
                    code, story.code, self.config.access_code_normalization
                ):
                    logger.warning(f"[Play] Invalid access code for story {story_id}")
                    raise InvalidCodeError("Invalid access code, try again.")

            intro = tx.content.get_intro_scene(story_id)
            if intro is None:
                logger.warning(f"[Play] Story {story_id} has no intro scene")
                raise NotFoundError("This story has no introduction scene.")

            question_count = tx.content.get_question_count(story_id)
            if question_count is None:
                raise NotFoundError("Story not found.")
            tx.content.get_question_chain(story_id)

            if not tx.stats.increment_played(story_id):
                raise PersistenceError("Could not update the story statistics.")

            session = PlayingSession(
                story_id=story_id,
                user_id=user_id,
                start_time=datetime.utcnow(),
                score=0,
                max_score=question_count * self.config.points_per_question,
                level=self.config.starting_level,
                current_scene_id=intro.id,
                current_scene_type=SceneType.INTRO,
            )
            if not tx.sessions.create_session(session):
                raise PersistenceError("Could not create the playing session.")

        logger.info(
            f"[Play] Session {session.id} started: story={story_id} "
            f"max_score={session.max_score} level={session.level}"
        )
        return session

    # ==================== Presentation ====================

    def present_scene(self, session_id: int, seed: Optional[Seed] = None) -> SceneView:
        """
        Build the view of the session's current scene.

        For question scenes the visible options are selected with `seed`; a
        fresh seed is generated when none is given. Passing back the seed of
        a previous presentation reproduces the same options in the same order.
        While an answer awaits acknowledgement its feedback is shown instead.
        """
        with self.store.transaction() as tx:
            session = self._require_session(tx, session_id)
            if session.finished:
                raise InvalidStateError("This playing session is already finished.")
            return self._scene_view(tx, session, seed)

    def _scene_view(
        self, tx: StoreTransaction, session: PlayingSession, seed: Optional[Seed]
    ) -> SceneView:
        scene_type = SceneType(session.current_scene_type)
        pending = self._outstanding(tx, session)
        common = dict(
            session_id=session.id,
            state=state_of(session, pending),
            scene_type=scene_type,
            scene_id=session.current_scene_id,
            max_score=session.max_score,
        )

        if pending is not None:
            question = tx.content.get_question_scene_with_options(session.current_scene_id)
            if question is None:
                raise self._scene_not_found(session)
            return SceneView(
                text=pending.feedback_text,
                question=question.question,
                score=pending.score,
                level=pending.level,
                **common,
            )

        common.update(score=session.score, level=session.level)

        if scene_type == SceneType.INTRO:
            intro = tx.content.get_intro_scene(session.story_id)
            if intro is None or intro.id != session.current_scene_id:
                raise self._scene_not_found(session)
            return SceneView(text=intro.text, **common)

        if scene_type == SceneType.QUESTION:
            question = tx.content.get_question_scene_with_options(
                session.current_scene_id
            )
            if question is None:
                raise self._scene_not_found(session)
            seed = str(seed) if seed is not None else new_seed()
            options = select_options(question.options, session.level, seed)
            return SceneView(
                text=question.text,
                question=question.question,
                options=[OptionView(id=option.id, text=option.text) for option in options],
                seed=seed,
                **common,
            )

        ending = tx.content.get_ending_scene_by_id(session.current_scene_id)
        if ending is None:
            raise self._scene_not_found(session)
        return SceneView(text=ending.text, ending_type=ending.ending_type, **common)

    # ==================== Intro -> Question ====================

    def acknowledge_intro(self, session_id: int) -> PlayingSession:
        """Move from the intro scene to the first question scene."""
        with self.store.transaction() as tx:
            session = self._require_session(tx, session_id)
            self._require_state(session, PlayState.INTRO, "leave the introduction")

            first = tx.content.get_first_question_scene(session.story_id)
            if first is None:
                logger.warning(f"[Play] Story {session.story_id} has no question scenes")
                raise MissingContentError("This story has no questions.")

            if not tx.sessions.advance_session(
                session.id, first.id, SceneType.QUESTION, session.score, session.level
            ):
                raise PersistenceError("Could not save your progress.")

        logger.info(f"[Play] Session {session_id}: intro -> question {first.id}")
        return session.model_copy(
            update={"current_scene_id": first.id, "current_scene_type": SceneType.QUESTION}
        )

    # ==================== Question -> Feedback ====================

    def submit_answer(
        self,
        session_id: int,
        scene_id: Optional[int],
        answer_option_id: Optional[int],
        seed: Optional[Seed] = None,
    ) -> AnswerResult:
        """
        Answer the current question.

        Returns feedback plus a PendingTransition to acknowledge, or, when an
        incorrect answer is given on level 1, the summary of the now finished
        session.

        Args:
            session_id: Session being played
            scene_id: Question scene the answer was given on (None skips the check)
            answer_option_id: Chosen option
            seed: Seed the options were presented with; when given, the chosen
                option must be one of the options that seed presents

        Raises:
            AnswerRequiredError: No option chosen; carries the same scene view
            InvalidStateError: Session is not on a question, is on another one,
                or already has an answer awaiting acknowledgement
        """
        if answer_option_id is None:
            view = self.present_scene(session_id, seed)
            if view.state != PlayState.QUESTION:
                raise InvalidStateError("There is no question to answer right now.")
            raise AnswerRequiredError("Please choose an answer before continuing.", scene=view)

        with self.store.transaction() as tx:
            session = self._require_session(tx, session_id)
            self._require_state(
                session,
                PlayState.QUESTION,
                "answer a question",
                self._outstanding(tx, session),
            )
            if scene_id is not None and scene_id != session.current_scene_id:
                logger.warning(
                    f"[Play] Session {session_id}: answer for scene {scene_id} "
                    f"but session is on {session.current_scene_id}"
                )
                raise InvalidStateError("This question is no longer the current one.")

            question = tx.content.get_question_scene_with_options(session.current_scene_id)
            if question is None:
                raise self._scene_not_found(session)

            option = tx.content.get_answer_option(answer_option_id)
            if option is None:
                raise NotFoundError("The chosen answer could not be found.")
            if option.question_scene_id != question.id:
                raise InvalidArgument("The chosen answer does not belong to this question.")
            if seed is not None:
                shown = select_options(question.options, session.level, str(seed))
                if option.id not in {shown_option.id for shown_option in shown}:
                    raise InvalidArgument("The chosen answer was not one of the options shown.")

            outcome = score_and_level(session.level, option.is_correct)
            new_score = session.score + outcome.points

            if outcome.terminated:
                if not tx.pending.clear_pending(session.id):
                    raise PersistenceError("Could not finish the playing session.")
                if not tx.sessions.finish_session(session.id, new_score, outcome.new_level):
                    raise PersistenceError("Could not finish the playing session.")
                if not tx.stats.increment_failed(session.story_id):
                    raise PersistenceError("Could not update the story statistics.")
                story = self._require_story(tx, session.story_id)
                logger.info(
                    f"[Play] Session {session_id}: incorrect answer on level 1, "
                    f"finished with score {new_score}/{session.max_score}"
                )
                return AnswerResult(
                    outcome="finished",
                    summary=SessionSummary(
                        session_id=session.id,
                        story_id=story.id,
                        story_title=story.title,
                        final_score=new_score,
                        max_score=session.max_score,
                        level=outcome.new_level,
                        failed=True,
                        finished=True,
                        finished_at=datetime.utcnow(),
                    ),
                )

            next_id = None
            if question.next_question_scene_id is not None:
                next_scene = tx.content.get_next_question_scene(question.id)
                if next_scene is None:
                    raise MissingContentError("The next question could not be found.")
                next_id = next_scene.id

            pending = PendingTransition(
                session_id=session.id,
                token=uuid4().hex,
                question_scene_id=question.id,
                answer_option_id=option.id,
                score=new_score,
                level=outcome.new_level,
                next_question_scene_id=next_id,
                feedback_text=option.feedback_text,
                issued_at=datetime.utcnow(),
            )
            if not tx.pending.stage_pending(pending):
                raise PersistenceError("Could not save your answer.")

        logger.info(
            f"[Play] Session {session_id}: answered scene {question.id} "
            f"correct={option.is_correct} points={outcome.points} level={outcome.new_level}"
        )
        return AnswerResult(
            outcome="feedback",
            feedback=FeedbackView(
                feedback_text=option.feedback_text,
                is_correct=option.is_correct,
                points_earned=outcome.points,
                score=new_score,
                level=outcome.new_level,
                next_scene_type=(
                    SceneType.QUESTION if next_id is not None else SceneType.ENDING
                ),
            ),
            pending=pending,
        )

    # ==================== Feedback -> Question / Ending ====================

    def acknowledge_feedback(self, pending: PendingTransition) -> PlayingSession:
        """
        Commit a staged answer and move on.

        `pending` only identifies the answer: it must match the one staged
        for the session, whose own issue time decides expiry. The staged
        answer is then revalidated against the current content before it is
        committed and removed.

        Returns:
            The session positioned at the next question or at the resolved ending

        Raises:
            InvalidStateError: No staged answer, or it expired, differs or is stale
            MissingContentError: Next question or ending scene missing
        """
        with self.store.transaction() as tx:
            session = self._require_session(tx, pending.session_id)
            staged = tx.pending.get_pending(session.id)
            if staged is not None and staged.is_expired(
                self.config.pending_transition_ttl_seconds
            ):
                logger.warning(f"[Play] Session {session.id}: pending answer expired")
                raise InvalidStateError(
                    "This answer has expired. Please answer the question again."
                )
            self._require_state(
                session, PlayState.FEEDBACK, "continue after feedback", staged
            )
            if any(
                getattr(staged, field) != getattr(pending, field)
                for field in _PENDING_FIELDS
            ):
                raise self._stale(session, "not the staged answer")
            if session.current_scene_id != staged.question_scene_id:
                raise self._stale(session, "answered scene differs")

            question = tx.content.get_question_scene_with_options(staged.question_scene_id)
            if question is None:
                raise self._scene_not_found(session)
            option = tx.content.get_answer_option(staged.answer_option_id)
            if option is None or option.question_scene_id != question.id:
                raise self._stale(session, "answer option does not belong to the scene")

            outcome = score_and_level(session.level, option.is_correct)
            score = session.score + outcome.points
            if outcome.terminated or (score, outcome.new_level) != (staged.score, staged.level):
                raise self._stale(session, "staged score or level does not match")
            if question.next_question_scene_id != staged.next_question_scene_id:
                raise self._stale(session, "next scene changed")

            if question.next_question_scene_id is not None:
                next_scene = tx.content.get_next_question_scene(question.id)
                if next_scene is None:
                    raise MissingContentError("The next question could not be found.")
                next_id, next_type = next_scene.id, SceneType.QUESTION
            else:
                ending_type = resolve_ending(
                    score,
                    session.max_score,
                    good_threshold=self.config.good_ending_threshold,
                    neutral_threshold=self.config.neutral_ending_threshold,
                )
                ending = tx.content.get_ending_scene(session.story_id, ending_type)
                if ending is None:
                    logger.warning(
                        f"[Play] Story {session.story_id} has no {ending_type.value} ending"
                    )
                    raise MissingContentError(
                        "We could not determine an ending for your story."
                    )
                next_id, next_type = ending.id, SceneType.ENDING

            if not tx.sessions.advance_session(
                session.id, next_id, next_type, score, outcome.new_level
            ):
                raise PersistenceError("Could not save your progress.")
            if not tx.pending.clear_pending(session.id):
                raise PersistenceError("Could not save your progress.")

        logger.info(
            f"[Play] Session {session.id}: feedback -> {next_type.value} {next_id} "
            f"score={score}/{session.max_score} level={outcome.new_level}"
        )
        return session.model_copy(
            update={
                "current_scene_id": next_id,
                "current_scene_type": next_type,
                "score": score,
                "level": outcome.new_level,
            }
        )

    # ==================== Ending -> Finished ====================

    def acknowledge_ending(self, session_id: int) -> SessionSummary:
        """
        Finish the session after its ending scene.

        A finished session is immutable; acknowledging again raises
        InvalidStateError and leaves the finished counter untouched.
        """
        with self.store.transaction() as tx:
            session = self._require_session(tx, session_id)
            self._require_state(session, PlayState.ENDING, "finish the story")

            ending = tx.content.get_ending_scene_by_id(session.current_scene_id)
            if ending is None:
                raise self._scene_not_found(session)

            if not tx.sessions.finish_session(session.id, session.score, session.level):
                raise PersistenceError("Could not finish the playing session.")
            if not tx.stats.increment_finished(session.story_id):
                raise PersistenceError("Could not update the story statistics.")
            story = self._require_story(tx, session.story_id)

        logger.info(
            f"[Play] Session {session_id} finished: {ending.ending_type.value} ending, "
            f"score {session.score}/{session.max_score}"
        )
        return SessionSummary(
            session_id=session.id,
            story_id=story.id,
            story_title=story.title,
            final_score=session.score,
            max_score=session.max_score,
            level=session.level,
            ending_type=ending.ending_type,
            failed=False,
            finished=True,
            finished_at=datetime.utcnow(),
        )

    # ==================== Summary ====================

    def get_summary(self, session_id: int) -> SessionSummary:
        """Title, score and outcome of a session."""
        with self.store.transaction() as tx:
            session = self._require_session(tx, session_id)
            story = self._require_story(tx, session.story_id)

            ending_type = None
            if SceneType(session.current_scene_type) == SceneType.ENDING:
                ending = tx.content.get_ending_scene_by_id(session.current_scene_id)
                ending_type = ending.ending_type if ending else None

        return SessionSummary(
            session_id=session.id,
            story_id=story.id,
            story_title=story.title,
            final_score=session.score,
            max_score=session.max_score,
            level=session.level,
            ending_type=ending_type,
            failed=session.failed,
            finished=session.finished,
            finished_at=session.finished_at,
        )

    # ==================== Helpers ====================

    def _require_session(self, tx: StoreTransaction, session_id: int) -> PlayingSession:
        session = tx.sessions.get_session(session_id)
        if session is None:
            logger.warning(f"[Play] Session {session_id} not found")
            raise NotFoundError(
                "Your playing session could not be found. Please start the story again."
            )
        return session

    def _require_story(self, tx: StoreTransaction, story_id: int) -> Story:
        story = tx.stories.get_story(story_id)
        if story is None:
            logger.warning(f"[Play] Story {story_id} not found")
            raise NotFoundError("We couldn't find the story you're trying to play.")
        return story

    def _outstanding(
        self, tx: StoreTransaction, session: PlayingSession
    ) -> Optional[PendingTransition]:
        """The session's staged answer, unless it has expired."""
        pending = tx.pending.get_pending(session.id)
        if pending is None or pending.is_expired(self.config.pending_transition_ttl_seconds):
            return None
        return pending

    def _require_state(
        self,
        session: PlayingSession,
        expected: PlayState,
        action: str,
        pending: Optional[PendingTransition] = None,
    ) -> None:
        current = state_of(session, pending)
        if current != expected:
            logger.warning(
                f"[Play] Session {session.id}: cannot {action} in state {current.value}"
            )
            if current == PlayState.FINISHED:
                raise InvalidStateError("This playing session is already finished.")
            if current == PlayState.FEEDBACK:
                raise InvalidStateError(
                    "This question was already answered. Continue to move on."
                )
            raise InvalidStateError(f"Cannot {action} right now.")

    def _scene_not_found(self, session: PlayingSession) -> NotFoundError:
        logger.warning(
            f"[Play] Session {session.id}: scene {session.current_scene_id} "
            f"({SceneType(session.current_scene_type).value}) not found"
        )
        return NotFoundError("We could not load the requested scene.")

    def _stale(self, session: PlayingSession, reason: str) -> InvalidStateError:
        logger.warning(f"[Play] Session {session.id}: rejected pending answer ({reason})")
        return InvalidStateError(
            "This answer no longer matches your session. Please answer the question again."
        )
