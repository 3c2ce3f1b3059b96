"""
Queue builder for review sessions.

Builds the ordered card list handed to SessionQueue.start:
1. Sort due cards by learning-state priority, then due date
2. Take as many new cards as the limits and ratio allow
3. Interleave the new cards among the reviews at even spacing
"""

import logging
import math
from dataclasses import dataclass

from cadence.application.utils.time import ensure_utc
from cadence.domain.constants import (
    DEFAULT_MAX_NEW_CARDS,
    DEFAULT_MAX_SESSION_CARDS,
    DEFAULT_NEW_CARD_RATIO,
)
from cadence.domain.memory.models import CardLearningState, CardMemoryState

logger = logging.getLogger(__name__)

# Lower sorts first
STATE_PRIORITY = {
    CardLearningState.RELAPSED: 0,
    CardLearningState.LEARNING: 1,
    CardLearningState.REVIEW: 2,
    CardLearningState.NEW: 3,
}


@dataclass
class QueueBuildResult:
    """Result of queue building operation."""

    card_ids: list[str]  # Final interleaved order
    review_ids: list[str]  # Due cards included (priority order)
    new_ids: list[str]  # New cards included
    skipped_due: int  # Due cards left out by max_cards
    skipped_new: int  # New cards left out by the new-card limits


def sort_by_priority(states: list[CardMemoryState]) -> list[CardMemoryState]:
    return sorted(
        states,
        key=lambda s: (STATE_PRIORITY[s.state], ensure_utc(s.due_at), s.card_id),
    )


def build_review_queue(
    due: list[CardMemoryState],
    new: list[CardMemoryState],
    max_cards: int = DEFAULT_MAX_SESSION_CARDS,
    max_new_cards: int = DEFAULT_MAX_NEW_CARDS,
    new_card_ratio: float = DEFAULT_NEW_CARD_RATIO,
) -> QueueBuildResult:
    """
    Mix due reviews and unseen cards into one session queue.

    Args:
        due: Cards currently due for review
        new: Cards never studied, in introduction order
        max_cards: Total session size cap
        max_new_cards: Cap on new cards per session
        new_card_ratio: Share of max_cards reserved for new cards

    Returns:
        QueueBuildResult with the interleaved order and diagnostics
    """
    if max_cards < 0 or max_new_cards < 0:
        raise ValueError("card limits must not be negative")
    if not 0.0 <= new_card_ratio <= 1.0:
        raise ValueError(f"new_card_ratio must be within [0, 1], got {new_card_ratio}")

    ordered_due = sort_by_priority(due)

    target_new = min(len(new), max_new_cards, math.floor(max_cards * new_card_ratio))
    target_review = min(len(ordered_due), max_cards - target_new)
    actual_new = min(target_new, max_cards - target_review)

    review_ids = [s.card_id for s in ordered_due[:target_review]]
    new_ids = [s.card_id for s in new[:actual_new]]
    card_ids = interleave(review_ids, new_ids)

    logger.debug(
        f"Review queue: {len(review_ids)} due + {len(new_ids)} new "
        f"(skipped {len(ordered_due) - len(review_ids)} due, {len(new) - len(new_ids)} new)"
    )

    return QueueBuildResult(
        card_ids=card_ids,
        review_ids=review_ids,
        new_ids=new_ids,
        skipped_due=len(ordered_due) - len(review_ids),
        skipped_new=len(new) - len(new_ids),
    )


def interleave(review_ids: list[str], new_ids: list[str]) -> list[str]:
    """
    Spread new cards among reviews at roughly even intervals.

    With 14 reviews and 6 new cards a new card lands about every 3-4 slots,
    starting half an interval in.
    """
    if not new_ids:
        return list(review_ids)
    if not review_ids:
        return list(new_ids)

    total = len(review_ids) + len(new_ids)
    spacing = total / len(new_ids)
    result: list[str] = []
    new_index = review_index = 0
    next_new_at = math.floor(spacing / 2)

    for i in range(total):
        if new_index < len(new_ids) and i >= next_new_at:
            result.append(new_ids[new_index])
            new_index += 1
            next_new_at = math.floor(spacing / 2 + spacing * new_index)
        elif review_index < len(review_ids):
            result.append(review_ids[review_index])
            review_index += 1
        else:
            result.append(new_ids[new_index])
            new_index += 1

    return result
