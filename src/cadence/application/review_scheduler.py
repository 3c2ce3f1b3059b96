"""
ReviewScheduler: application service owning durable card memory state.

Every apply_rating call is a real review event. Calls for the same card are
serialised on a per-card asyncio.Lock; different cards proceed in parallel.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime

from ulid import ULID

from cadence.application.mastery import MasteryClassifier
from cadence.application.memory_model import MemoryModel
from cadence.application.utils.time import ensure_utc, format_interval, to_days
from cadence.domain.constants import DEFAULT_DUE_LIMIT
from cadence.domain.errors import NotFoundError
from cadence.domain.memory.models import (
    CardMemoryState,
    MasteryLevel,
    Rating,
    ReviewLogEntry,
)
from cadence.domain.memory.ports import CardStateRepository

logger = logging.getLogger(__name__)


class ReviewScheduler:
    """
    Follows Dependency Inversion: depends on the CardStateRepository port,
    not a concrete store.
    """

    def __init__(
        self,
        repo: CardStateRepository,
        model: MemoryModel | None = None,
        classifier: MasteryClassifier | None = None,
    ):
        self._repo = repo
        self.model = model or MemoryModel()
        self.classifier = classifier or MasteryClassifier(self.model.config)
        # One lock per card id ever touched; the card set is bounded by the curriculum.
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def register_cards(self, card_ids: list[str], now: datetime) -> list[CardMemoryState]:
        """
        Create NEW states for unknown cards. Existing cards are left untouched.

        Returns:
            The states that were created.
        """
        now = ensure_utc(now)
        created = []
        for card_id in dict.fromkeys(card_ids):
            async with self._locks[card_id]:
                if await self._repo.get(card_id) is not None:
                    continue
                state = CardMemoryState.new(
                    card_id, now, difficulty=self.model.config.difficulty_min
                )
                await self._repo.save(state)
                created.append(state)
        if created:
            logger.info(f"Registered {len(created)} new card(s)")
        return created

    async def get_state(self, card_id: str) -> CardMemoryState:
        state = await self._repo.get(card_id)
        if state is None:
            raise NotFoundError("card", card_id)
        return state

    async def due_cards(
        self, now: datetime, limit: int = DEFAULT_DUE_LIMIT
    ) -> list[CardMemoryState]:
        """
        Cards with due_at <= now, most overdue first.

        Ties on due_at are broken by lapses, most lapsed first. Read-only.
        """
        now = ensure_utc(now)
        due = [s for s in await self._repo.list_all() if ensure_utc(s.due_at) <= now]
        due.sort(key=lambda s: (ensure_utc(s.due_at), -s.lapses, s.card_id))
        return due[: max(limit, 0)]

    async def count_due(self, now: datetime) -> int:
        now = ensure_utc(now)
        return sum(1 for s in await self._repo.list_all() if ensure_utc(s.due_at) <= now)

    async def apply_rating(
        self,
        card_id: str,
        rating: int,
        now: datetime,
        context: str = "review-session",
    ) -> CardMemoryState:
        """
        Commit one review.

        Args:
            card_id: Card being reviewed.
            rating: 1-4. Anything else raises InvalidRatingError before any
                state is read.
            now: Review instant.
            context: Where the review happened, recorded in the log.

        Returns:
            The persisted post-review state.

        Raises:
            NotFoundError: Unknown card.
            InvalidRatingError: Rating outside 1..4.
        """
        grade = Rating.parse(rating)
        now = ensure_utc(now)

        async with self._locks[card_id]:
            before = await self._repo.get(card_id)
            if before is None:
                raise NotFoundError("card", card_id)

            after = self.model.update(before, grade, now)

            elapsed = 0.0
            if before.last_reviewed_at is not None:
                elapsed = max(0.0, to_days(after.last_reviewed_at - before.last_reviewed_at))
            await self._repo.commit_review(
                after,
                ReviewLogEntry(
                    log_id=str(ULID()),
                    card_id=card_id,
                    rating=grade,
                    reviewed_at=after.last_reviewed_at,
                    state_before=before.state,
                    elapsed_days=elapsed,
                    scheduled_days=to_days(after.due_at - after.last_reviewed_at),
                    context=context,
                ),
            )

        logger.info(
            f"Reviewed {card_id} ({context}): {grade.name} "
            f"{before.state.value}->{after.state.value}, due {after.due_at.isoformat()}"
        )
        return after

    async def preview(self, card_id: str, now: datetime) -> dict[Rating, str]:
        """Formatted next intervals for all four ratings; nothing is committed."""
        state = await self.get_state(card_id)
        intervals = self.model.preview_intervals(state, now)
        return {rating: format_interval(delta) for rating, delta in intervals.items()}

    async def classify(self, card_id: str) -> MasteryLevel:
        return self.classifier.classify(await self.get_state(card_id))

    async def review_history(self, card_ids: list[str]) -> list[ReviewLogEntry]:
        if not card_ids:
            return []
        return await self._repo.get_review_history(card_ids)
