# Application Stats Package
from .metrics_calculator import EnrichedCard, MetricsCalculator
from .service import LessonMastery, MasteryStatsService, ModuleMastery

__all__ = ["MetricsCalculator", "EnrichedCard", "MasteryStatsService", "LessonMastery", "ModuleMastery"]
