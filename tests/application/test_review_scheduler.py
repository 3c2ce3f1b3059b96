import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from cadence.application.mastery import MasteryClassifier
from cadence.application.memory_model import MemoryModel
from cadence.application.review_scheduler import ReviewScheduler
from cadence.domain.errors import InvalidRatingError, NotFoundError
from cadence.domain.memory.models import CardLearningState, CardMemoryState, MasteryLevel, Rating


@pytest.fixture
def scheduler(card_repo, config):
    return ReviewScheduler(card_repo, MemoryModel(config), MasteryClassifier(config))


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_creates_new_cards_once(self, scheduler, card_repo, now):
        created = await scheduler.register_cards(["a", "b", "a"], now)
        assert [s.card_id for s in created] == ["a", "b"]

        await scheduler.apply_rating("a", Rating.GOOD, now)
        again = await scheduler.register_cards(["a", "c"], now)

        assert [s.card_id for s in again] == ["c"]
        assert (await card_repo.get("a")).reps == 1

    @pytest.mark.asyncio
    async def test_get_state_unknown_card(self, scheduler):
        with pytest.raises(NotFoundError):
            await scheduler.get_state("missing")


class TestApplyRating:
    @pytest.mark.asyncio
    async def test_commits_state_and_log(self, scheduler, card_repo, now):
        await scheduler.register_cards(["a"], now)

        state = await scheduler.apply_rating("a", 3, now, context="inline")

        assert state.state is CardLearningState.LEARNING
        assert await card_repo.get("a") == state
        history = await scheduler.review_history(["a"])
        assert len(history) == 1
        entry = history[0]
        assert entry.rating is Rating.GOOD
        assert entry.state_before is CardLearningState.NEW
        assert entry.context == "inline"
        assert entry.elapsed_days == 0.0
        assert len(entry.log_id) == 26

    @pytest.mark.asyncio
    async def test_unknown_card(self, scheduler, now):
        with pytest.raises(NotFoundError, match="card not found: ghost"):
            await scheduler.apply_rating("ghost", 3, now)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 5, 99])
    async def test_invalid_rating_leaves_state_untouched(self, scheduler, card_repo, now, rating):
        await scheduler.register_cards(["a"], now)
        before = await card_repo.get("a")

        with pytest.raises(InvalidRatingError):
            await scheduler.apply_rating("a", rating, now)

        assert await card_repo.get("a") == before
        assert await scheduler.review_history(["a"]) == []

    @pytest.mark.asyncio
    async def test_every_call_is_a_review(self, scheduler, now):
        await scheduler.register_cards(["a"], now)
        await scheduler.apply_rating("a", Rating.GOOD, now)
        state = await scheduler.apply_rating("a", Rating.GOOD, now)
        assert state.reps == 2

    @pytest.mark.asyncio
    async def test_concurrent_ratings_on_one_card_are_serialised(self, scheduler, now):
        await scheduler.register_cards(["a", "b"], now)

        await asyncio.gather(
            *(scheduler.apply_rating("a", Rating.GOOD, now) for _ in range(10)),
            *(scheduler.apply_rating("b", Rating.HARD, now) for _ in range(5)),
        )

        assert (await scheduler.get_state("a")).reps == 10
        assert (await scheduler.get_state("b")).reps == 5
        assert len(await scheduler.review_history(["a"])) == 10

    @pytest.mark.asyncio
    async def test_uses_repository_port(self, config, now):
        repo = AsyncMock()
        repo.get.return_value = CardMemoryState.new("a", now)
        scheduler = ReviewScheduler(repo, MemoryModel(config))

        await scheduler.apply_rating("a", Rating.EASY, now)

        repo.commit_review.assert_awaited_once()
        state, entry = repo.commit_review.await_args.args
        assert entry.card_id == state.card_id == "a"
        assert entry.reviewed_at == state.last_reviewed_at
        repo.save.assert_not_awaited()


class TestDueCards:
    @pytest.mark.asyncio
    async def test_orders_by_due_then_lapses(self, scheduler, card_repo, now):
        base = dict(stability=3.0, difficulty=5.0, reps=2, state=CardLearningState.REVIEW)
        await card_repo.save(
            CardMemoryState(card_id="later", due_at=now - timedelta(hours=1), **base)
        )
        await card_repo.save(
            CardMemoryState(card_id="early", due_at=now - timedelta(days=2), **base)
        )
        await card_repo.save(
            CardMemoryState(card_id="tie-lapsed", due_at=now - timedelta(hours=1), lapses=4, **base)
        )
        await card_repo.save(
            CardMemoryState(card_id="future", due_at=now + timedelta(days=1), **base)
        )

        due = await scheduler.due_cards(now, limit=10)

        assert [s.card_id for s in due] == ["early", "tie-lapsed", "later"]
        assert await scheduler.count_due(now) == 3
        assert [s.card_id for s in await scheduler.due_cards(now, limit=1)] == ["early"]

    @pytest.mark.asyncio
    async def test_rated_card_leaves_due_list(self, scheduler, now):
        await scheduler.register_cards(["a"], now)
        assert await scheduler.count_due(now) == 1

        await scheduler.apply_rating("a", Rating.GOOD, now)

        assert await scheduler.count_due(now) == 0
        assert await scheduler.count_due(now + timedelta(minutes=1)) == 1


class TestPreviewAndClassify:
    @pytest.mark.asyncio
    async def test_preview_labels(self, scheduler, now):
        await scheduler.register_cards(["a"], now)
        labels = await scheduler.preview("a", now)
        assert labels == {r: "1m" for r in Rating}

    @pytest.mark.asyncio
    async def test_classify(self, scheduler, card_repo, now):
        await scheduler.register_cards(["a"], now)
        assert await scheduler.classify("a") is MasteryLevel.NEW

        await card_repo.save(
            CardMemoryState(
                card_id="a",
                stability=45.0,
                difficulty=4.0,
                due_at=now,
                last_reviewed_at=now - timedelta(days=45),
                reps=6,
                state=CardLearningState.REVIEW,
                learning_step=3,
            )
        )
        assert await scheduler.classify("a") is MasteryLevel.MASTERED

    @pytest.mark.asyncio
    async def test_history_for_no_cards(self, scheduler):
        assert await scheduler.review_history([]) == []
