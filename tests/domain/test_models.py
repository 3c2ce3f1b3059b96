from datetime import datetime, timedelta, timezone

import pytest

from cadence.domain.errors import InvalidRatingError, InvalidTransitionError, NotFoundError
from cadence.domain.lessons.models import ALLOWED_TRANSITIONS, LessonProgress, LessonStatus
from cadence.domain.memory.models import (
    GOT_IT,
    STUDY_AGAIN,
    CardLearningState,
    CardMemoryState,
    MasteryLevel,
    Rating,
)
from cadence.domain.sessions import AdvanceResult, FlashcardStackStats, SessionQueueItem

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestRating:
    def test_parse_accepts_canonical_values(self):
        assert Rating.parse(1) is Rating.AGAIN
        assert Rating.parse("4") is Rating.EASY

    @pytest.mark.parametrize("bad", [0, 5, -1, "x", None, True])
    def test_parse_rejects_out_of_range(self, bad):
        with pytest.raises(InvalidRatingError, match="Rating must be one of 1, 2, 3, 4"):
            Rating.parse(bad)

    def test_two_button_labels(self):
        assert STUDY_AGAIN is Rating.AGAIN
        assert GOT_IT is Rating.GOOD
        assert not STUDY_AGAIN.is_success
        assert GOT_IT.is_success


class TestCardMemoryState:
    def test_new_card_is_due_immediately(self):
        state = CardMemoryState.new("c1", T0)
        assert state.is_new
        assert state.state is CardLearningState.NEW
        assert state.due_at == T0
        assert state.stability == 0.0
        assert state.scheduled_interval is None

    def test_scheduled_interval(self):
        state = CardMemoryState(
            card_id="c1",
            stability=3.0,
            difficulty=5.0,
            due_at=T0 + timedelta(days=3),
            last_reviewed_at=T0,
            reps=2,
            state=CardLearningState.REVIEW,
        )
        assert state.scheduled_interval == timedelta(days=3)

    def test_mastery_levels_are_ordered(self):
        assert MasteryLevel.NEW < MasteryLevel.LEARNING < MasteryLevel.FAMILIAR
        assert MasteryLevel.FAMILIAR < MasteryLevel.PROFICIENT < MasteryLevel.MASTERED
        assert MasteryLevel.PROFICIENT.label == "Proficient"


class TestLessonModels:
    def test_done_statuses(self):
        assert LessonStatus.COMPLETED.is_done
        assert LessonStatus.MASTERED.is_done
        assert not LessonStatus.IN_PROGRESS.is_done

    def test_mastered_only_falls_back_to_completed(self):
        assert ALLOWED_TRANSITIONS[LessonStatus.MASTERED] == {LessonStatus.COMPLETED}
        assert LessonStatus.AVAILABLE not in ALLOWED_TRANSITIONS[LessonStatus.COMPLETED]

    def test_review_locked_lesson_is_not_navigable(self):
        progress = LessonProgress("1.1", status=LessonStatus.COMPLETED, review_locked=True)
        assert not progress.is_navigable
        assert LessonProgress("1.1", status=LessonStatus.AVAILABLE).is_navigable
        assert not LessonProgress("1.1").is_navigable


class TestSessionValues:
    def test_progress_is_capped(self):
        result = AdvanceResult(
            rated=SessionQueueItem("c1", 0), requeued=None, completed=True, rated_count=3, total=3
        )
        assert result.progress == 1.0

    def test_accuracy_without_ratings(self):
        assert FlashcardStackStats(total_cards=0, got_it=0, study_again=0).accuracy == 0.0


def test_error_messages():
    assert str(NotFoundError("card", "c9")) == "card not found: c9"
    err = InvalidTransitionError("lesson 1.1", "locked", "completed", "guard")
    assert "cannot transition from 'locked' to 'completed'" in str(err)
    assert err.current == "locked"
