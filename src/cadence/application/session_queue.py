"""
In-session requeue policy for flashcard drills.

A "Study Again" rating sends a fresh copy of the card to the back of the
queue. Nothing here touches durable memory state; StudySession forwards
ratings to the ReviewScheduler separately.
"""

import logging
from collections import deque

from cadence.domain.errors import SessionExhaustedError
from cadence.domain.memory.models import Rating
from cadence.domain.sessions import AdvanceResult, FlashcardStackStats, SessionQueueItem

logger = logging.getLogger(__name__)


class SessionQueue:
    """
    Single-owner FIFO of SessionQueueItem.

    Progress denominator is initial_count + requeues, so it only grows and
    rated_count / total never decreases.
    """

    def __init__(self, card_ids: list[str] | None = None):
        self._queue: deque[SessionQueueItem] = deque()
        self._next_seq = 0
        self._initial_count = 0
        self._requeues = 0
        self._got_it = 0
        self._study_again = 0
        if card_ids is not None:
            self.start(card_ids)

    def start(self, card_ids: list[str]) -> None:
        """Reset the queue to the given cards, in order."""
        self._queue.clear()
        self._next_seq = 0
        self._requeues = 0
        self._got_it = 0
        self._study_again = 0
        for card_id in card_ids:
            self._queue.append(self._make_item(card_id))
        self._initial_count = len(self._queue)

    def current(self) -> SessionQueueItem | None:
        return self._queue[0] if self._queue else None

    def is_complete(self) -> bool:
        return not self._queue

    def advance(self, rating: int) -> AdvanceResult:
        """
        Rate the head item and remove it.

        Again requeues the card at the tail under a new instance_seq; any other
        rating counts as "Got It".

        Raises:
            SessionExhaustedError: The queue is already empty.
            InvalidRatingError: Rating outside 1..4.
        """
        grade = Rating.parse(rating)
        if not self._queue:
            raise SessionExhaustedError("No card left to rate in this session")

        rated = self._queue.popleft()
        requeued = None
        if grade is Rating.AGAIN:
            self._study_again += 1
            self._requeues += 1
            requeued = self._make_item(rated.card_id)
            self._queue.append(requeued)
            logger.debug(f"Requeued {rated.card_id} as #{requeued.instance_seq}")
        else:
            self._got_it += 1

        return AdvanceResult(
            rated=rated,
            requeued=requeued,
            completed=not self._queue,
            rated_count=self.rated_count,
            total=self.total,
        )

    @property
    def rated_count(self) -> int:
        return self._got_it + self._study_again

    @property
    def total(self) -> int:
        return self._initial_count + self._requeues

    @property
    def progress(self) -> float:
        return min(self.rated_count / self.total, 1.0) if self.total else 1.0

    def __len__(self) -> int:
        return len(self._queue)

    def stats(self) -> FlashcardStackStats:
        """total_cards counts every presentation, including requeued copies."""
        return FlashcardStackStats(
            total_cards=self.total,
            got_it=self._got_it,
            study_again=self._study_again,
        )

    def _make_item(self, card_id: str) -> SessionQueueItem:
        item = SessionQueueItem(card_id=card_id, instance_seq=self._next_seq)
        self._next_seq += 1
        return item
