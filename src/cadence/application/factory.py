"""
Engine Factory
Centralizes the logic for selecting repository adapters and wiring services.
"""

import logging
from dataclasses import dataclass

from cadence.application.config import EngineConfig
from cadence.application.graph_resolver import load_curriculum
from cadence.application.lesson_gate import LessonProgressGate
from cadence.application.mastery import MasteryClassifier
from cadence.application.memory_model import MemoryModel
from cadence.application.review_scheduler import ReviewScheduler
from cadence.application.stats import MasteryStatsService, MetricsCalculator
from cadence.domain.graph import LessonGraph
from cadence.domain.lessons.ports import LessonProgressRepository
from cadence.domain.memory.ports import CardStateRepository
from cadence.infrastructure.adapters.json_store import (
    JsonCardStateRepository,
    JsonLessonProgressRepository,
    JsonStore,
)
from cadence.infrastructure.adapters.memory import (
    InMemoryCardStateRepository,
    InMemoryLessonProgressRepository,
)

logger = logging.getLogger(__name__)


def get_repositories(
    config: EngineConfig,
) -> tuple[CardStateRepository, LessonProgressRepository]:
    """
    Returns the card and lesson repositories for config.backend.
    """
    if config.backend == "json":
        store = JsonStore(config.store_path)
        logger.debug(f"Backend: JSON ({config.store_path})")
        return JsonCardStateRepository(store), JsonLessonProgressRepository(store)

    logger.debug("Backend: in-memory")
    return InMemoryCardStateRepository(), InMemoryLessonProgressRepository()


@dataclass
class Engine:
    """Fully wired services sharing one configuration and one set of repositories."""

    config: EngineConfig
    cards: CardStateRepository
    lessons: LessonProgressRepository
    scheduler: ReviewScheduler
    graph: LessonGraph
    gate: LessonProgressGate
    stats: MasteryStatsService


def build_engine(config: EngineConfig, graph: LessonGraph | None = None) -> Engine:
    """
    Wire the engine from config.

    The curriculum comes from `graph` if given, else config.curriculum_path,
    else an empty graph.

    Raises:
        CurriculumError: Unreadable curriculum or prerequisite cycle.
    """
    if graph is None:
        if config.curriculum_path is not None:
            graph = load_curriculum(config.curriculum_path)
        else:
            graph = LessonGraph()

    cards, lessons = get_repositories(config)
    model = MemoryModel(config)
    classifier = MasteryClassifier(config)

    return Engine(
        config=config,
        cards=cards,
        lessons=lessons,
        scheduler=ReviewScheduler(cards, model, classifier),
        graph=graph,
        gate=LessonProgressGate(graph, lessons, cards, classifier, config),
        stats=MasteryStatsService(cards, graph, MetricsCalculator(model, classifier)),
    )
