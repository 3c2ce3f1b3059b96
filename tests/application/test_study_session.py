from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from cadence.application.review_scheduler import ReviewScheduler
from cadence.application.study_session import StudySession
from cadence.domain.errors import InvalidRatingError, NotFoundError, SessionExhaustedError
from cadence.domain.lessons.models import LessonStatus, TransitionResult
from cadence.domain.memory.models import GOT_IT, STUDY_AGAIN, CardLearningState, CardMemoryState


@pytest.fixture
def scheduler(card_repo):
    return ReviewScheduler(card_repo)


@pytest.fixture
def session(scheduler):
    return StudySession(scheduler)


class TestStudySession:
    @pytest.mark.asyncio
    async def test_drill_commits_every_rating(self, session, scheduler, now):
        await scheduler.register_cards(["a", "b"], now)
        session.start(["a", "b"])

        await session.rate(STUDY_AGAIN, now)
        await session.rate(GOT_IT, now)
        outcome = await session.rate(GOT_IT, now + timedelta(minutes=2))

        assert outcome.advance.completed
        assert session.is_complete()
        assert session.stats().study_again == 1
        history = await scheduler.review_history(["a"])
        assert [entry.rating for entry in history] == [STUDY_AGAIN, GOT_IT]
        assert all(entry.context == "review-session" for entry in history)

    @pytest.mark.asyncio
    async def test_failed_commit_does_not_advance(self, session, now):
        session.start(["ghost"])

        with pytest.raises(NotFoundError):
            await session.rate(GOT_IT, now)

        assert session.current().card_id == "ghost"

    @pytest.mark.asyncio
    async def test_invalid_rating(self, session, scheduler, now):
        await scheduler.register_cards(["a"], now)
        session.start(["a"])
        with pytest.raises(InvalidRatingError):
            await session.rate(7, now)
        assert session.current().card_id == "a"

    @pytest.mark.asyncio
    async def test_rating_after_completion(self, session, now):
        session.start([])
        with pytest.raises(SessionExhaustedError):
            await session.rate(GOT_IT, now)

    @pytest.mark.asyncio
    async def test_start_from_due_mixes_new_cards(self, session, scheduler, card_repo, now):
        await scheduler.register_cards([f"n{i}" for i in range(5)], now)
        for i in range(10):
            await card_repo.save(
                CardMemoryState(
                    card_id=f"r{i}",
                    stability=4.0,
                    difficulty=5.0,
                    due_at=now - timedelta(hours=i + 1),
                    last_reviewed_at=now - timedelta(days=4),
                    reps=2,
                    state=CardLearningState.REVIEW,
                )
            )

        build = await session.start_from_due(now, max_cards=10, new_card_ratio=0.2)

        assert len(build.new_ids) == 2
        assert len(build.review_ids) == 8
        assert session.current().card_id == build.card_ids[0]
        assert len(session.queue) == 10

    @pytest.mark.asyncio
    async def test_context_is_forwarded(self, now):
        scheduler = AsyncMock()
        session = StudySession(scheduler, context="quiz")
        session.start(["a"])

        await session.rate(GOT_IT, now)

        scheduler.apply_rating.assert_awaited_once_with("a", GOT_IT, now, context="quiz")

    @pytest.mark.asyncio
    async def test_rating_reevaluates_lessons(self, now):
        scheduler = AsyncMock()
        gate = AsyncMock()
        gate.card_reviewed.return_value = [
            TransitionResult("1.1", LessonStatus.MASTERED, LessonStatus.COMPLETED, True)
        ]
        session = StudySession(scheduler, gate=gate)
        session.start(["a"])

        outcome = await session.rate(STUDY_AGAIN, now)

        gate.card_reviewed.assert_awaited_once_with("a", now)
        assert [r.current for r in outcome.lesson_changes] == [LessonStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_failed_commit_skips_lessons(self, now):
        scheduler = AsyncMock()
        scheduler.apply_rating.side_effect = NotFoundError("card", "a")
        gate = AsyncMock()
        session = StudySession(scheduler, gate=gate)
        session.start(["a"])

        with pytest.raises(NotFoundError):
            await session.rate(GOT_IT, now)

        gate.card_reviewed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_gate_no_lessons_change(self, session, scheduler, now):
        await scheduler.register_cards(["c-tensor-rank"], now)
        session.start(["c-tensor-rank"])

        outcome = await session.rate(GOT_IT, now)

        assert outcome.lesson_changes == ()
