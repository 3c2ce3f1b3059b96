"""
Memory model: the numeric core of the scheduler.

FSRS-family update rules. Given a card's memory state and a rating it computes
the next state and due instant. Pure and deterministic: identical inputs
always reproduce identical schedules (no interval fuzz).

Forgetting curve:
    R(t) = (1 + t / (9 * S)) ** -1

Stability on success:
    S' = S * (1 + e^w8 * (Dmax + 1 - D) * S^-w9 * (e^(w10 * (1 - R)) - 1) * hard * easy)

Stability on lapse:
    S' = max(S_min, min(S, w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))))

Difficulty (mean-reverting toward w4):
    D' = w7 * w4 + (1 - w7) * (D - w6 * (G - 3))
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta

from cadence.application.config import EngineConfig
from cadence.application.utils.time import ensure_utc, to_days
from cadence.domain.constants import FORGETTING_CURVE_FACTOR, REFERENCE_RETENTION
from cadence.domain.memory.models import CardLearningState, CardMemoryState, Rating

logger = logging.getLogger(__name__)


class MemoryModel:
    """
    Computes updated CardMemoryState values from ratings.

    Stateless and side-effect free apart from logging clock skew.
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self.w = self.config.weights
        self._learning_steps = [timedelta(minutes=m) for m in self.config.learning_steps_minutes]
        self._relearning_steps = [
            timedelta(minutes=m) for m in self.config.relearning_steps_minutes
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def retrievability(self, state: CardMemoryState, now: datetime) -> float:
        """Probability of recall at `now`. A never-reviewed card returns 1.0."""
        if state.last_reviewed_at is None or state.stability <= 0:
            return 1.0
        elapsed = self._elapsed_days(state, ensure_utc(now))
        return (1.0 + elapsed / (FORGETTING_CURVE_FACTOR * state.stability)) ** -1

    def update(self, state: CardMemoryState, rating: Rating, now: datetime) -> CardMemoryState:
        """
        Apply one review.

        Args:
            state: Current card state.
            rating: Again / Hard / Good / Easy.
            now: Review instant. If it precedes last_reviewed_at the review is
                anchored at last_reviewed_at and elapsed time is zero.

        Returns:
            The next CardMemoryState. The input is never mutated.
        """
        rating = Rating(rating)
        anchor = self._anchor(state, ensure_utc(now))
        r = self.retrievability(state, anchor)

        stability, difficulty = self._next_memory(state, rating, r)

        if rating is Rating.AGAIN:
            next_state = self._on_again(state)
        else:
            next_state = self._on_success(state, stability)

        new_state, learning_step, interval, lapses, reps = next_state
        interval = self._clamp_interval(interval)

        logger.debug(
            f"card={state.card_id} rating={rating.name} R={r:.4f} "
            f"S={state.stability:.3f}->{stability:.3f} D={state.difficulty:.3f}->{difficulty:.3f} "
            f"state={state.state.value}->{new_state.value} interval={interval}"
        )

        return replace(
            state,
            stability=stability,
            difficulty=difficulty,
            due_at=anchor + interval,
            last_reviewed_at=anchor,
            reps=reps,
            lapses=lapses,
            state=new_state,
            learning_step=learning_step,
        )

    def preview_intervals(
        self, state: CardMemoryState, now: datetime
    ) -> dict[Rating, timedelta]:
        """Next interval for every rating, without committing anything."""
        previews: dict[Rating, timedelta] = {}
        for rating in Rating:
            outcome = self.update(state, rating, now)
            previews[rating] = outcome.due_at - outcome.last_reviewed_at  # type: ignore[operator]
        return previews

    def interval_from_stability(self, stability: float) -> timedelta:
        """
        Interval at which retrievability hits the target retention.

        S * ln(target) / ln(0.9), in whole days (at least one).
        """
        days = stability * math.log(self.config.target_retention) / math.log(REFERENCE_RETENTION)
        days = min(max(round(days), 1), self.config.max_interval_days)
        return timedelta(days=days)

    # ------------------------------------------------------------------
    # Memory parameters
    # ------------------------------------------------------------------

    def initial_stability(self, rating: Rating) -> float:
        return self._clamp_stability(self.w[rating - 1])

    def initial_difficulty(self, rating: Rating) -> float:
        return self._clamp_difficulty(self.w[4] - (rating - 3) * self.w[5])

    def next_difficulty(self, difficulty: float, rating: Rating) -> float:
        # Again adds a penalty of 2 * w6; Hard/Good/Easy subtract w6 * (G - 3)
        shifted = difficulty - self.w[6] * (rating - 3)
        reverted = self.w[7] * self.w[4] + (1 - self.w[7]) * shifted
        return self._clamp_difficulty(reverted)

    def stability_growth_factor(
        self, rating: Rating, r: float, difficulty: float, stability: float
    ) -> float:
        hard_penalty = self.w[15] if rating is Rating.HARD else 1.0
        easy_bonus = self.w[16] if rating is Rating.EASY else 1.0
        return 1.0 + (
            math.exp(self.w[8])
            * (self.config.difficulty_max + 1 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp(self.w[10] * (1 - r)) - 1)
            * hard_penalty
            * easy_bonus
        )

    def stability_decay_on_lapse(self, r: float, difficulty: float, stability: float) -> float:
        post_lapse = (
            self.w[11]
            * difficulty ** (-self.w[12])
            * ((stability + 1) ** self.w[13] - 1)
            * math.exp(self.w[14] * (1 - r))
        )
        return min(1.0, post_lapse / stability)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_memory(
        self, state: CardMemoryState, rating: Rating, r: float
    ) -> tuple[float, float]:
        if state.is_new or state.stability <= 0:
            return self.initial_stability(rating), self.initial_difficulty(rating)

        difficulty = self._clamp_difficulty(state.difficulty)
        if rating is Rating.AGAIN:
            factor = self.stability_decay_on_lapse(r, difficulty, state.stability)
        else:
            factor = self.stability_growth_factor(rating, r, difficulty, state.stability)
        stability = self._clamp_stability(state.stability * factor)
        return stability, self.next_difficulty(difficulty, rating)

    def _on_again(
        self, state: CardMemoryState
    ) -> tuple[CardLearningState, int, timedelta, int, int]:
        if state.is_new:
            # Nothing learned yet, so nothing lapsed: restart the ladder
            return CardLearningState.LEARNING, 0, self._learning_steps[0], state.lapses, state.reps

        if self._graduated(state):
            step, interval = state.learning_step, self._relearning_steps[0]
        else:
            step, interval = 0, self._learning_steps[0]
        return CardLearningState.RELAPSED, step, interval, state.lapses + 1, state.reps

    def _on_success(
        self, state: CardMemoryState, stability: float
    ) -> tuple[CardLearningState, int, timedelta, int, int]:
        reps = state.reps + 1
        ladder = self._learning_steps

        if state.is_new:
            new_state, step, interval = CardLearningState.LEARNING, 1, ladder[0]
        elif self._graduated(state):
            new_state, step = CardLearningState.REVIEW, state.learning_step
            interval = self.interval_from_stability(stability)
        else:
            step = state.learning_step + 1
            interval = ladder[min(step, len(ladder)) - 1]
            new_state = (
                CardLearningState.REVIEW if step >= len(ladder) else CardLearningState.LEARNING
            )

        # A successful review never shortens the interval it follows
        previous = state.scheduled_interval
        if previous is not None and previous > interval:
            interval = previous
        return new_state, step, interval, state.lapses, reps

    def _graduated(self, state: CardMemoryState) -> bool:
        return state.learning_step >= len(self._learning_steps)

    def _anchor(self, state: CardMemoryState, now: datetime) -> datetime:
        last = state.last_reviewed_at
        if last is not None and now < ensure_utc(last):
            logger.warning(
                f"Clock skew on card {state.card_id}: review at {now.isoformat()} "
                f"precedes last review at {last.isoformat()}; elapsed clamped to 0"
            )
            return ensure_utc(last)
        return now

    def _elapsed_days(self, state: CardMemoryState, now: datetime) -> float:
        if state.last_reviewed_at is None:
            return 0.0
        return max(0.0, to_days(now - ensure_utc(state.last_reviewed_at)))

    def _clamp_interval(self, interval: timedelta) -> timedelta:
        lower = timedelta(minutes=self.config.min_interval_minutes)
        upper = timedelta(days=self.config.max_interval_days)
        return min(max(interval, lower), upper)

    def _clamp_difficulty(self, value: float) -> float:
        return min(max(value, self.config.difficulty_min), self.config.difficulty_max)

    def _clamp_stability(self, value: float) -> float:
        return min(max(value, self.config.min_stability), self.config.max_stability)
