# Domain Memory Package
from .models import (
    GOT_IT,
    STUDY_AGAIN,
    CardLearningState,
    CardMemoryState,
    MasteryLevel,
    Rating,
    ReviewLogEntry,
)
from .ports import CardStateRepository

__all__ = [
    "Rating",
    "STUDY_AGAIN",
    "GOT_IT",
    "CardLearningState",
    "MasteryLevel",
    "CardMemoryState",
    "ReviewLogEntry",
    "CardStateRepository",
]
