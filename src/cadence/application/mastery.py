"""
Mastery classification from memory state.

Bands by stability thresholds T1 < T2 < T3, then demotes one level when the
card has lapsed more often than its band tolerates.
"""

from cadence.application.config import EngineConfig
from cadence.domain.memory.models import CardMemoryState, MasteryLevel

_LEVEL_SCORES = {
    MasteryLevel.NEW: 0,
    MasteryLevel.LEARNING: 25,
    MasteryLevel.FAMILIAR: 50,
    MasteryLevel.PROFICIENT: 75,
    MasteryLevel.MASTERED: 100,
}


class MasteryClassifier:
    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self._ceilings = {
            MasteryLevel.FAMILIAR: self.config.lapse_ceiling_low,
            MasteryLevel.PROFICIENT: self.config.lapse_ceiling_mid,
            MasteryLevel.MASTERED: self.config.lapse_ceiling_high,
        }

    def classify(self, state: CardMemoryState | None) -> MasteryLevel:
        """A missing or never-successfully-reviewed card is NEW."""
        if state is None or state.reps == 0:
            return MasteryLevel.NEW

        level = self._band(state.stability)
        ceiling = self._ceilings.get(level)
        if ceiling is not None and state.lapses > ceiling:
            # Exactly one level, so the order between bands is preserved
            level = MasteryLevel(level - 1)
        return level

    def _band(self, stability: float) -> MasteryLevel:
        if stability >= self.config.mastered_stability_days:
            return MasteryLevel.MASTERED
        if stability >= self.config.proficient_stability_days:
            return MasteryLevel.PROFICIENT
        if stability >= self.config.familiar_stability_days:
            return MasteryLevel.FAMILIAR
        return MasteryLevel.LEARNING

    @staticmethod
    def score(level: MasteryLevel) -> int:
        """Progress-bar percentage for a level."""
        return _LEVEL_SCORES[level]
