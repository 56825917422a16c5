"""
Tests for the playing session state machine.

Runs full play-throughs against a real SQLite store.
"""

from datetime import datetime, timedelta

import pytest

from storyplay.config import Settings
from storyplay.db.schema import PendingAnswerRecord
from storyplay.engine import StoryPlayer, state_of
from storyplay.errors import (
    AnswerRequiredError,
    InvalidArgument,
    InvalidCodeError,
    InvalidStateError,
    MissingContentError,
    NotFoundError,
)
from storyplay.schemas import Accessibility, EndingType, PlayState, SceneType


def answer_and_continue(player, option_for, session_id, correct):
    """Answer the current question and acknowledge the feedback"""
    view = player.present_scene(session_id)
    assert view.state == PlayState.QUESTION
    result = player.submit_answer(
        session_id, view.scene_id, option_for(view.scene_id, correct)
    )
    assert result.outcome == "feedback"
    return player.acknowledge_feedback(result.pending)


class TestStartStory:
    """Test starting a playing session"""

    def test_start_public_story(self, player, story, stats_of):
        session = player.start_story(story.id, "pupil-1")

        assert session.id is not None
        assert session.score == 0
        assert session.level == 3
        assert session.max_score == 30
        assert session.current_scene_type == SceneType.INTRO
        assert state_of(session) == PlayState.INTRO
        assert stats_of(story.id).played == 1

    def test_start_unknown_story(self, player):
        with pytest.raises(NotFoundError):
            player.start_story(9999, "pupil-1")

    def test_private_story_with_code(self, player, make_story, stats_of):
        story = make_story(accessibility=Accessibility.PRIVATE)
        session = player.start_story(story.id, "pupil-1", f"  {story.code.lower()} ")
        assert session.id is not None
        assert stats_of(story.id).played == 1

    def test_private_story_wrong_code(self, player, make_story, stats_of, db):
        story = make_story(accessibility=Accessibility.PRIVATE)

        with pytest.raises(InvalidCodeError):
            player.start_story(story.id, "pupil-1", "WRONG")
        with pytest.raises(InvalidCodeError):
            player.start_story(story.id, "pupil-1", None)

        assert stats_of(story.id).played == 0
        with db.transaction() as tx:
            assert tx.sessions.list_sessions() == []

    def test_exact_code_normalization(self, db, make_story):
        story = make_story(accessibility=Accessibility.PRIVATE)
        strict = StoryPlayer(db, Settings(access_code_normalization="exact"))
        with pytest.raises(InvalidCodeError):
            strict.start_story(story.id, "pupil-1", f" {story.code} ")
        assert strict.start_story(story.id, "pupil-1", story.code).id is not None

    def test_starting_level_from_config(self, db, story):
        session = StoryPlayer(db, Settings(starting_level=1)).start_story(story.id, "p")
        assert session.level == 1


class TestPlayThrough:
    """Test complete play-throughs"""

    def test_all_correct_reaches_good_ending(self, player, story, option_for, stats_of):
        session = player.start_story(story.id, "pupil-1")
        intro = player.present_scene(session.id)
        assert intro.text == "Once upon a time"
        assert intro.options is None

        player.acknowledge_intro(session.id)
        for _ in range(3):
            session = answer_and_continue(player, option_for, session.id, True)

        assert session.score == 30
        ending = player.present_scene(session.id)
        assert ending.state == PlayState.ENDING
        assert ending.ending_type == EndingType.GOOD
        assert ending.text == "The good ending"

        summary = player.acknowledge_ending(session.id)
        assert summary.final_score == 30
        assert summary.max_score == 30
        assert summary.ending_type == EndingType.GOOD
        assert summary.finished is True
        assert summary.failed is False
        assert summary.story_title == "Test Story"

        stats = stats_of(story.id)
        assert (stats.played, stats.finished, stats.failed) == (1, 1, 0)

    def test_mixed_answers_reach_neutral_ending(self, player, make_story, option_for):
        story = make_story(question_count=5)
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)

        # 10 (L3) + 0 (->L2) + 5 (->L3) + 0 (->L2) + 5 = 20 of 50
        for correct in (True, False, True, False, True):
            session = answer_and_continue(player, option_for, session.id, correct)

        assert session.score == 20
        assert session.max_score == 50
        assert player.present_scene(session.id).ending_type == EndingType.NEUTRAL

    def test_all_wrong_from_level_three_fails_on_third(self, player, story, option_for, stats_of):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        answer_and_continue(player, option_for, session.id, False)
        session = answer_and_continue(player, option_for, session.id, False)
        assert session.level == 1

        view = player.present_scene(session.id)
        result = player.submit_answer(session.id, view.scene_id, option_for(view.scene_id, False))
        assert result.outcome == "finished"
        assert result.summary.failed is True
        assert stats_of(story.id).failed == 1

    def test_incorrect_on_level_one_finishes_immediately(self, db, story, option_for, stats_of):
        player = StoryPlayer(db, Settings(starting_level=1))
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)

        view = player.present_scene(session.id)
        assert len(view.options) == 2
        result = player.submit_answer(session.id, view.scene_id, option_for(view.scene_id, False))

        assert result.outcome == "finished"
        assert result.pending is None
        assert result.feedback is None
        assert result.summary.final_score == 0
        assert result.summary.failed is True
        assert result.summary.ending_type is None

        stats = stats_of(story.id)
        assert (stats.played, stats.finished, stats.failed) == (1, 0, 1)

        summary = player.get_summary(session.id)
        assert summary.finished is True
        assert summary.failed is True
        with pytest.raises(InvalidStateError):
            player.present_scene(session.id)

    def test_level_shapes_option_count(self, player, story, option_for):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        assert len(player.present_scene(session.id).options) == 4

        answer_and_continue(player, option_for, session.id, False)
        assert len(player.present_scene(session.id).options) == 3

    def test_feedback_view(self, player, story, option_for):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)

        result = player.submit_answer(session.id, view.scene_id, option_for(view.scene_id))
        assert result.feedback.is_correct is True
        assert result.feedback.points_earned == 10
        assert result.feedback.feedback_text == "Q1 feedback 1"
        assert result.feedback.next_scene_type == SceneType.QUESTION
        assert result.pending.next_question_scene_id is not None

        # Nothing is committed before the feedback is acknowledged
        assert player.get_summary(session.id).final_score == 0
        assert player.present_scene(session.id).state == PlayState.FEEDBACK


class TestSeedsAndAnswers:
    """Test option presentation seeds and answer validation"""

    def test_same_seed_same_options(self, player, story):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        first = player.present_scene(session.id)
        again = player.present_scene(session.id, first.seed)
        assert again.options == first.options
        assert again.seed == first.seed

    def test_missing_answer_keeps_options(self, player, story):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)

        with pytest.raises(AnswerRequiredError) as exc_info:
            player.submit_answer(session.id, view.scene_id, None, view.seed)

        assert exc_info.value.scene.options == view.options
        assert exc_info.value.to_dict()["scene"]["seed"] == view.seed

    def test_missing_answer_outside_question(self, player, story):
        session = player.start_story(story.id, "pupil-1")
        with pytest.raises(InvalidStateError):
            player.submit_answer(session.id, None, None)

    def test_option_from_another_question(self, player, story, option_for, db):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)
        with db.transaction() as tx:
            second = tx.content.get_next_question_scene(view.scene_id)

        with pytest.raises(InvalidArgument):
            player.submit_answer(session.id, view.scene_id, option_for(second.id))

    def test_option_not_shown_with_seed(self, db, story, option_for):
        player = StoryPlayer(db, Settings(starting_level=1))
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)

        with db.transaction() as tx:
            scene = tx.content.get_question_scene_with_options(view.scene_id)
        shown = {option.id for option in view.options}
        hidden = next(option.id for option in scene.options if option.id not in shown)

        with pytest.raises(InvalidArgument):
            player.submit_answer(session.id, view.scene_id, hidden, view.seed)

    def test_answer_for_wrong_scene(self, player, story, option_for):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)
        with pytest.raises(InvalidStateError):
            player.submit_answer(session.id, view.scene_id + 100, option_for(view.scene_id))

    def test_answer_before_intro(self, player, story, option_for):
        session = player.start_story(story.id, "pupil-1")
        with pytest.raises(InvalidStateError):
            player.submit_answer(session.id, None, 1)


class TestPendingTransitions:
    """Test acknowledging staged answers"""

    def _answered(self, player, story, option_for, correct=True):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        view = player.present_scene(session.id)
        return player.submit_answer(
            session.id, view.scene_id, option_for(view.scene_id, correct)
        ).pending

    def _backdate(self, db, session_id, hours=2):
        with db.transaction() as tx:
            record = tx.db.get(PendingAnswerRecord, session_id)
            record.issued_at = datetime.utcnow() - timedelta(hours=hours)

    def test_acknowledge_twice_is_rejected(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        player.acknowledge_feedback(pending)
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(pending)

    def test_tampered_score_is_rejected(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(pending.model_copy(update={"score": 1000}))
        assert player.get_summary(pending.session_id).final_score == 0

    def test_tampered_next_scene_is_rejected(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(pending.model_copy(update={"next_question_scene_id": None}))

    def test_unknown_token_is_rejected(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(pending.model_copy(update={"token": "0" * 32}))
        player.acknowledge_feedback(pending)

    def test_expired_pending_is_rejected(self, player, story, option_for, db):
        pending = self._answered(player, story, option_for)
        self._backdate(db, pending.session_id)
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(pending)

    def test_client_issue_time_is_not_trusted(self, player, story, option_for, db):
        pending = self._answered(player, story, option_for)
        self._backdate(db, pending.session_id)
        future = pending.model_copy(
            update={"issued_at": datetime.utcnow() + timedelta(days=3650)}
        )
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(future)
        assert player.get_summary(pending.session_id).final_score == 0

    def test_future_issue_time_counts_as_expired(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        future = pending.model_copy(update={"issued_at": datetime.utcnow() + timedelta(hours=1)})
        assert future.is_expired(900)

    def test_pending_is_reported_expired(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        assert not pending.is_expired(900)
        assert pending.is_expired(900, now=datetime.utcnow() + timedelta(seconds=901))

    def test_answering_same_question_twice_is_rejected(self, player, story, option_for):
        pending = self._answered(player, story, option_for, correct=False)
        with pytest.raises(InvalidStateError):
            player.submit_answer(
                pending.session_id,
                pending.question_scene_id,
                option_for(pending.question_scene_id, True),
            )

        session = player.acknowledge_feedback(pending)
        assert session.score == 0
        assert session.level == 2

    def test_scene_shows_feedback_while_pending(self, player, story, option_for):
        pending = self._answered(player, story, option_for)
        view = player.present_scene(pending.session_id)
        assert view.state == PlayState.FEEDBACK
        assert view.text == pending.feedback_text
        assert view.options is None
        assert view.score == 10

        with pytest.raises(InvalidStateError):
            player.submit_answer(pending.session_id, None, None)

    def test_expired_pending_allows_new_answer(self, player, story, option_for, db):
        first = self._answered(player, story, option_for, correct=False)
        self._backdate(db, first.session_id)
        assert player.present_scene(first.session_id).state == PlayState.QUESTION

        second = player.submit_answer(
            first.session_id,
            first.question_scene_id,
            option_for(first.question_scene_id, True),
        ).pending
        assert second.token != first.token
        with pytest.raises(InvalidStateError):
            player.acknowledge_feedback(first)

        session = player.acknowledge_feedback(second)
        assert session.score == 10
        with db.transaction() as tx:
            assert tx.pending.get_pending(session.id) is None


class TestEnding:
    """Test the end of a session"""

    def _at_ending(self, player, story, option_for):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        for _ in range(3):
            session = answer_and_continue(player, option_for, session.id, True)
        return session

    def test_second_acknowledgement_is_rejected(self, player, story, option_for, stats_of):
        session = self._at_ending(player, story, option_for)
        player.acknowledge_ending(session.id)

        with pytest.raises(InvalidStateError):
            player.acknowledge_ending(session.id)
        assert stats_of(story.id).finished == 1

    def test_intro_cannot_be_acknowledged_twice(self, player, story):
        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        with pytest.raises(InvalidStateError):
            player.acknowledge_intro(session.id)

    def test_missing_ending_scene(self, player, story, option_for, db):
        from storyplay.db.schema import EndingSceneRecord

        with db.transaction() as tx:
            tx.db.query(EndingSceneRecord).filter(
                EndingSceneRecord.story_id == story.id,
                EndingSceneRecord.ending_type == EndingType.GOOD.value,
            ).delete()

        session = player.start_story(story.id, "pupil-1")
        player.acknowledge_intro(session.id)
        for _ in range(2):
            session = answer_and_continue(player, option_for, session.id, True)

        view = player.present_scene(session.id)
        result = player.submit_answer(session.id, view.scene_id, option_for(view.scene_id))
        with pytest.raises(MissingContentError):
            player.acknowledge_feedback(result.pending)
        assert player.present_scene(session.id).state == PlayState.FEEDBACK
        assert player.get_summary(session.id).final_score == 20

    def test_unknown_session(self, player):
        with pytest.raises(NotFoundError):
            player.present_scene(12345)
