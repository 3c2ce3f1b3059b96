import pytest

from cadence.application.session_queue import SessionQueue
from cadence.domain.errors import InvalidRatingError, SessionExhaustedError
from cadence.domain.memory.models import GOT_IT, STUDY_AGAIN


class TestSessionQueue:
    def test_five_cards_two_study_again(self):
        queue = SessionQueue(["a", "b", "c", "d", "e"])
        missed = {"b", "d"}
        advances = 0

        while not queue.is_complete():
            item = queue.current()
            rating = STUDY_AGAIN if item.card_id in missed else GOT_IT
            missed.discard(item.card_id)
            queue.advance(rating)
            advances += 1

        stats = queue.stats()
        assert advances == 7
        assert stats.total_cards == 7
        assert stats.got_it == 5
        assert stats.study_again == 2
        assert queue.progress == 1.0

    def test_requeue_gets_fresh_instance(self):
        queue = SessionQueue(["a", "b"])
        result = queue.advance(STUDY_AGAIN)

        assert result.rated.card_id == "a"
        assert result.requeued.card_id == "a"
        assert result.requeued.instance_seq != result.rated.instance_seq
        assert result.total == 3
        assert not result.completed
        assert [queue.current().card_id] == ["b"]

    def test_progress_never_decreases(self):
        queue = SessionQueue(["a", "b", "c"])
        ratings = [GOT_IT, STUDY_AGAIN, STUDY_AGAIN, GOT_IT, STUDY_AGAIN, GOT_IT]
        seen = [queue.progress]

        for rating in ratings:
            result = queue.advance(rating)
            assert result.progress <= 1.0
            seen.append(result.progress)

        assert seen == sorted(seen)
        assert result.completed

    def test_hard_and_easy_count_as_got_it(self):
        queue = SessionQueue(["a", "b"])
        queue.advance(2)
        queue.advance(4)
        assert queue.stats().got_it == 2

    def test_advancing_empty_queue_raises(self):
        queue = SessionQueue([])
        assert queue.is_complete()
        assert queue.current() is None
        with pytest.raises(SessionExhaustedError):
            queue.advance(GOT_IT)

    def test_invalid_rating_does_not_advance(self):
        queue = SessionQueue(["a"])
        with pytest.raises(InvalidRatingError):
            queue.advance(9)
        assert queue.current().card_id == "a"

    def test_start_resets(self):
        queue = SessionQueue(["a"])
        queue.advance(STUDY_AGAIN)
        queue.start(["x", "y"])

        assert len(queue) == 2
        assert queue.stats().total_cards == 2
        assert queue.stats().study_again == 0
