"""
StudySession: one sitting of flashcard review.

Owns the in-session SessionQueue and forwards every rating to the durable
ReviewScheduler. The two never share state: the queue decides what is shown
next, the scheduler decides when the card is due again. With a lesson gate
attached, every committed rating also re-evaluates the lessons holding the card.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from cadence.application.lesson_gate import LessonProgressGate
from cadence.application.queue_builder import QueueBuildResult, build_review_queue
from cadence.application.review_scheduler import ReviewScheduler
from cadence.application.session_queue import SessionQueue
from cadence.domain.constants import (
    DEFAULT_MAX_NEW_CARDS,
    DEFAULT_MAX_SESSION_CARDS,
    DEFAULT_NEW_CARD_RATIO,
)
from cadence.domain.errors import SessionExhaustedError
from cadence.domain.lessons.models import TransitionResult
from cadence.domain.memory.models import CardMemoryState, Rating
from cadence.domain.sessions import AdvanceResult, FlashcardStackStats, SessionQueueItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingOutcome:
    """What one rating did to the session and to the card's schedule."""

    advance: AdvanceResult
    state: CardMemoryState
    lesson_changes: tuple[TransitionResult, ...] = field(default_factory=tuple)


class StudySession:
    def __init__(
        self,
        scheduler: ReviewScheduler,
        queue: SessionQueue | None = None,
        context: str = "review-session",
        gate: LessonProgressGate | None = None,
    ):
        self.scheduler = scheduler
        self.gate = gate
        self.queue = queue or SessionQueue()
        self.context = context
        self.build: QueueBuildResult | None = None

    def start(self, card_ids: list[str]) -> None:
        self.queue.start(card_ids)

    async def start_from_due(
        self,
        now: datetime,
        max_cards: int = DEFAULT_MAX_SESSION_CARDS,
        max_new_cards: int = DEFAULT_MAX_NEW_CARDS,
        new_card_ratio: float = DEFAULT_NEW_CARD_RATIO,
    ) -> QueueBuildResult:
        """Fill the queue from the scheduler's due cards, mixing in new ones."""
        candidates = await self.scheduler.due_cards(now, limit=await self.scheduler.count_due(now))
        due = [s for s in candidates if not s.is_new]
        new = [s for s in candidates if s.is_new]

        self.build = build_review_queue(
            due,
            new,
            max_cards=max_cards,
            max_new_cards=max_new_cards,
            new_card_ratio=new_card_ratio,
        )
        self.queue.start(self.build.card_ids)
        logger.info(f"Study session started with {len(self.build.card_ids)} card(s)")
        return self.build

    def current(self) -> SessionQueueItem | None:
        return self.queue.current()

    def is_complete(self) -> bool:
        return self.queue.is_complete()

    async def rate(self, rating: int, now: datetime) -> RatingOutcome:
        """
        Rate the card at the head of the queue.

        The durable review is committed first; the queue only advances once it
        succeeds, so a failed commit leaves the session where it was.

        Raises:
            SessionExhaustedError: No card left to rate.
            InvalidRatingError: Rating outside 1..4.
        """
        grade = Rating.parse(rating)
        item = self.queue.current()
        if item is None:
            raise SessionExhaustedError("No card left to rate in this session")

        state = await self.scheduler.apply_rating(item.card_id, grade, now, context=self.context)
        advance = self.queue.advance(grade)

        changes = ()
        if self.gate is not None:
            changes = tuple(await self.gate.card_reviewed(item.card_id, now))
        return RatingOutcome(advance=advance, state=state, lesson_changes=changes)

    def stats(self) -> FlashcardStackStats:
        return self.queue.stats()
