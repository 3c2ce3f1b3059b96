"""
Domain models for per-card memory state.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum

from cadence.domain.errors import InvalidRatingError


class Rating(IntEnum):
    """Canonical review grade. UI variants may relabel, never renumber."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """Coerce an int-like value to a Rating, raising InvalidRatingError otherwise."""
        if isinstance(value, bool):
            raise InvalidRatingError(value)
        try:
            return cls(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            raise InvalidRatingError(value) from None

    @property
    def is_success(self) -> bool:
        return self is not Rating.AGAIN


# Two-button flashcard flow labels
STUDY_AGAIN = Rating.AGAIN
GOT_IT = Rating.GOOD


class CardLearningState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELAPSED = "relapsed"


class MasteryLevel(IntEnum):
    """Ordered display classification, derived from memory state and never stored."""

    NEW = 0
    LEARNING = 1
    FAMILIAR = 2
    PROFICIENT = 3
    MASTERED = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class CardMemoryState:
    """
    Memory state for one reviewable fact.

    Attributes:
        card_id: Stable card identifier.
        stability: Days until recall probability decays to 90%. Zero only for a
            never-reviewed card.
        difficulty: Intrinsic item hardness within the configured bounds.
        due_at: Next scheduled review instant.
        last_reviewed_at: None only for a never-reviewed card.
        reps: Successful (rating >= 2) reviews.
        lapses: Again ratings given after the card left the New state.
        state: Learning phase of the card.
        learning_step: Learning-ladder steps climbed so far.
    """

    card_id: str
    stability: float
    difficulty: float
    due_at: datetime
    last_reviewed_at: datetime | None = None
    reps: int = 0
    lapses: int = 0
    state: CardLearningState = CardLearningState.NEW
    learning_step: int = 0

    @classmethod
    def new(cls, card_id: str, now: datetime, difficulty: float = 0.0) -> "CardMemoryState":
        """A never-reviewed card, due immediately."""
        return cls(card_id=card_id, stability=0.0, difficulty=difficulty, due_at=now)

    @property
    def is_new(self) -> bool:
        return self.state is CardLearningState.NEW

    @property
    def scheduled_interval(self) -> timedelta | None:
        """Interval produced by the most recent review."""
        if self.last_reviewed_at is None:
            return None
        return self.due_at - self.last_reviewed_at


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    Append-only record of one committed review.

    Attributes:
        log_id: ULID-based identifier.
        card_id: The card that was reviewed.
        rating: Button pressed.
        reviewed_at: Effective review instant.
        state_before: Learning phase before the review.
        elapsed_days: Days since the previous review (0 for a first review).
        scheduled_days: Interval assigned by this review, in days.
        context: Where the review happened (inline, quiz, review-session).
    """

    log_id: str
    card_id: str
    rating: Rating
    reviewed_at: datetime
    state_before: CardLearningState
    elapsed_days: float
    scheduled_days: float
    context: str = "review-session"
