"""
Ports (interfaces) for lesson progress persistence.
"""

from abc import ABC, abstractmethod

from .models import LessonProgress


class LessonProgressRepository(ABC):
    """Port for loading and storing per-lesson progress records."""

    @abstractmethod
    async def get(self, lesson_id: str) -> LessonProgress | None:
        """Return the stored progress, or None if the lesson was never touched."""
        pass

    @abstractmethod
    async def list_all(self) -> list[LessonProgress]:
        pass

    @abstractmethod
    async def save(self, progress: LessonProgress) -> None:
        """Insert or replace the record for progress.lesson_id."""
        pass
