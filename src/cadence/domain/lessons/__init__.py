# Domain Lessons Package
from .models import ALLOWED_TRANSITIONS, Lesson, LessonProgress, LessonStatus, TransitionResult
from .ports import LessonProgressRepository

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Lesson",
    "LessonProgress",
    "LessonStatus",
    "TransitionResult",
    "LessonProgressRepository",
]
