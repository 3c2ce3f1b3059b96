"""
Session-scoped value objects for flashcard drills and quizzes.

Nothing here is persisted; instances live as long as one sitting.
"""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class SessionQueueItem:
    """A card occurrence in a drill queue. A requeued card gets a fresh instance_seq."""

    card_id: str
    instance_seq: int


@dataclass(frozen=True)
class FlashcardStackStats:
    total_cards: int
    got_it: int
    study_again: int

    @property
    def accuracy(self) -> float:
        rated = self.got_it + self.study_again
        return self.got_it / rated if rated else 0.0


@dataclass(frozen=True)
class AdvanceResult:
    """
    Atomic outcome of one SessionQueue.advance call.

    Attributes:
        rated: The item that was just rated and removed from the head.
        requeued: Fresh tail item for the same card, when the rating was Again.
        completed: True when the queue is now empty.
        rated_count: Ratings observed so far (progress numerator).
        total: initial_count + requeues so far (progress denominator).
    """

    rated: SessionQueueItem
    requeued: SessionQueueItem | None
    completed: bool
    rated_count: int
    total: int

    @property
    def progress(self) -> float:
        return min(self.rated_count / self.total, 1.0) if self.total else 1.0


class QuizPhase(str, Enum):
    ANSWERING = "answering"
    ROUND_SUMMARY = "round-summary"
    FINISHED = "finished"


@dataclass(frozen=True)
class QuizQuestion:
    """
    A quiz prompt as seen by the round engine.

    correct_answer is only needed for submit(); related_card_ids point back at
    review cards to resurface when the question is missed.
    """

    id: str
    correct_answer: str | None = None
    related_card_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class QuizAnswer:
    question_id: str
    correct: bool
    attempt_index: int  # round number the answer belongs to (1-based)


@dataclass(frozen=True)
class QuizRoundState:
    round_number: int
    pending_questions: tuple[QuizQuestion, ...]
    results_this_round: tuple[QuizAnswer, ...] = ()

    @property
    def answered(self) -> int:
        return len(self.results_this_round)

    @property
    def is_over(self) -> bool:
        return self.answered >= len(self.pending_questions)


@dataclass(frozen=True)
class RoundSummary:
    round_number: int
    correct_count: int
    wrong_count: int

    @property
    def is_perfect(self) -> bool:
        return self.wrong_count == 0


@dataclass(frozen=True)
class QuizSessionResult:
    """
    Immutable quiz outcome.

    score is first-attempt (round 1) accuracy in [0, 1]; later rounds never
    change it.
    """

    score: float
    results: tuple[QuizAnswer, ...]
    rounds_played: int
    first_attempt_correct: int
    first_attempt_total: int
    passed: bool
    cards_for_relearning: tuple[str, ...] = field(default_factory=tuple)

    @property
    def percent(self) -> int:
        return round(self.score * 100)
