"""
Metrics calculator for deriving insights from card memory state.

This is a pure computation module with no I/O.
"""

import math
from dataclasses import dataclass
from datetime import datetime

from cadence.application.mastery import MasteryClassifier
from cadence.application.memory_model import MemoryModel
from cadence.application.utils.time import ensure_utc, to_days
from cadence.domain.memory.models import CardLearningState, CardMemoryState, MasteryLevel


@dataclass
class EnrichedCard:
    """
    Card memory state enriched with computed metrics.
    """

    card_id: str
    state: CardLearningState
    stability: float
    difficulty: float
    reps: int
    lapses: int
    due_at: datetime

    # Computed metrics
    level: MasteryLevel
    retrievability: float | None  # None for a never-reviewed card
    lapse_rate: float | None  # lapses / reps
    days_overdue: int | None  # Negative if not yet due
    is_due: bool


class MetricsCalculator:
    """
    Computes derived metrics from CardMemoryState objects.

    Stateless and side-effect free.
    """

    def __init__(
        self,
        model: MemoryModel | None = None,
        classifier: MasteryClassifier | None = None,
    ):
        self.model = model or MemoryModel()
        self.classifier = classifier or MasteryClassifier(self.model.config)

    def enrich(self, state: CardMemoryState, now: datetime) -> EnrichedCard:
        now = ensure_utc(now)
        return EnrichedCard(
            card_id=state.card_id,
            state=state.state,
            stability=state.stability,
            difficulty=state.difficulty,
            reps=state.reps,
            lapses=state.lapses,
            due_at=state.due_at,
            level=self.classifier.classify(state),
            retrievability=self._compute_retrievability(state, now),
            lapse_rate=self._compute_lapse_rate(state),
            days_overdue=self._compute_days_overdue(state, now),
            is_due=ensure_utc(state.due_at) <= now,
        )

    def _compute_retrievability(self, state: CardMemoryState, now: datetime) -> float | None:
        if state.last_reviewed_at is None:
            return None
        return self.model.retrievability(state, now)

    def _compute_lapse_rate(self, state: CardMemoryState) -> float | None:
        """
        Compute lapse rate as lapses / successful reviews.
        """
        if state.reps == 0:
            return None
        return state.lapses / state.reps

    def _compute_days_overdue(self, state: CardMemoryState, now: datetime) -> int | None:
        """Whole days past due (negative if not yet due)."""
        if state.last_reviewed_at is None:
            return None
        return math.floor(to_days(now - ensure_utc(state.due_at)))
