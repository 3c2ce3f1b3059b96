"""
Mastery Stats Service: application layer orchestrator.

Summarises card memory state per lesson and per module.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from cadence.domain.errors import NotFoundError
from cadence.domain.graph import LessonGraph
from cadence.domain.memory.models import CardLearningState, MasteryLevel
from cadence.domain.memory.ports import CardStateRepository

from .metrics_calculator import EnrichedCard, MetricsCalculator

logger = logging.getLogger(__name__)


@dataclass
class LessonMastery:
    lesson_id: str
    level: MasteryLevel  # lowest card level; NEW for a lesson without cards
    total_cards: int
    state_distribution: dict[CardLearningState, int]
    average_stability: float
    average_retrievability: float | None
    mastered_fraction: float
    cards: list[EnrichedCard] = field(default_factory=list)


@dataclass
class ModuleMastery:
    module_id: str
    level: MasteryLevel  # lowest lesson level
    total_lessons: int
    lesson_distribution: dict[MasteryLevel, int]
    lessons: list[LessonMastery] = field(default_factory=list)


class MasteryStatsService:
    """
    Follows Dependency Inversion: depends on the CardStateRepository
    abstraction, not concrete adapter implementations.
    """

    def __init__(
        self,
        card_repo: CardStateRepository,
        graph: LessonGraph,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            card_repo: The repository (port) for card state.
            graph: Curriculum graph mapping lessons to cards.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._repo = card_repo
        self._graph = graph
        self._calc = calculator or MetricsCalculator()

    async def get_enriched_cards(self, card_ids: list[str], now: datetime) -> list[EnrichedCard]:
        if not card_ids:
            return []
        states = await self._repo.get_many(card_ids)
        return [self._calc.enrich(s, now) for s in states]

    async def lesson_summary(self, lesson_id: str, now: datetime) -> LessonMastery:
        lesson = self._graph.nodes.get(lesson_id)
        if lesson is None:
            raise NotFoundError("lesson", lesson_id)

        cards = await self.get_enriched_cards(list(lesson.card_ids), now)
        # Cards never registered count as NEW
        missing = len(lesson.card_ids) - len(cards)

        distribution = Counter({s: 0 for s in CardLearningState})
        distribution.update(c.state for c in cards)
        distribution[CardLearningState.NEW] += missing

        total = len(lesson.card_ids)
        levels = [c.level for c in cards] + [MasteryLevel.NEW] * missing
        retrievabilities = [c.retrievability for c in cards if c.retrievability is not None]

        return LessonMastery(
            lesson_id=lesson_id,
            level=min(levels) if levels else MasteryLevel.NEW,
            total_cards=total,
            state_distribution=dict(distribution),
            average_stability=sum(c.stability for c in cards) / total if total else 0.0,
            average_retrievability=(
                sum(retrievabilities) / len(retrievabilities) if retrievabilities else None
            ),
            mastered_fraction=(
                sum(1 for lvl in levels if lvl is MasteryLevel.MASTERED) / total if total else 0.0
            ),
            cards=cards,
        )

    async def module_summary(self, module_id: str, now: datetime) -> ModuleMastery:
        lesson_ids = self._graph.modules.get(module_id)
        if lesson_ids is None:
            raise NotFoundError("module", module_id)

        lessons = [await self.lesson_summary(lid, now) for lid in lesson_ids]
        distribution = Counter({lvl: 0 for lvl in MasteryLevel})
        distribution.update(lesson.level for lesson in lessons)

        return ModuleMastery(
            module_id=module_id,
            level=min((lesson.level for lesson in lessons), default=MasteryLevel.NEW),
            total_lessons=len(lessons),
            lesson_distribution=dict(distribution),
            lessons=lessons,
        )
