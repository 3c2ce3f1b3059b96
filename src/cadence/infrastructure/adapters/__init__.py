# Infrastructure Adapters Package
from .json_store import JsonCardStateRepository, JsonLessonProgressRepository, JsonStore
from .memory import InMemoryCardStateRepository, InMemoryLessonProgressRepository

__all__ = [
    "InMemoryCardStateRepository",
    "InMemoryLessonProgressRepository",
    "JsonStore",
    "JsonCardStateRepository",
    "JsonLessonProgressRepository",
]
