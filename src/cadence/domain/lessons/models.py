"""
Domain models for lesson progress.

Status transitions:
    locked -> available -> in-progress -> completed <-> mastered
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class LessonStatus(str, Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    MASTERED = "mastered"

    @property
    def is_done(self) -> bool:
        """Completed or better; satisfies a prerequisite."""
        return self in (LessonStatus.COMPLETED, LessonStatus.MASTERED)


ALLOWED_TRANSITIONS: dict[LessonStatus, frozenset[LessonStatus]] = {
    LessonStatus.LOCKED: frozenset({LessonStatus.AVAILABLE}),
    LessonStatus.AVAILABLE: frozenset({LessonStatus.IN_PROGRESS}),
    LessonStatus.IN_PROGRESS: frozenset({LessonStatus.COMPLETED}),
    LessonStatus.COMPLETED: frozenset({LessonStatus.MASTERED}),
    LessonStatus.MASTERED: frozenset({LessonStatus.COMPLETED}),
}


@dataclass(frozen=True)
class Lesson:
    """
    Static lesson definition loaded from the curriculum.

    Attributes:
        id: Unique lesson identifier, e.g. "1.1".
        module_id: Parent module.
        title: Human-readable title.
        prerequisites: Lesson ids that must be completed first.
        section_ids: Sections that must be read to complete the lesson.
        card_ids: Inline review cards associated with the lesson.
        has_quiz: The lesson ends in a quiz that must be passed to complete it.
    """

    id: str
    module_id: str
    title: str = ""
    prerequisites: tuple[str, ...] = ()
    section_ids: tuple[str, ...] = ()
    card_ids: tuple[str, ...] = ()
    has_quiz: bool = False


@dataclass(frozen=True)
class LessonProgress:
    """
    Learner progress through a single lesson.

    review_locked is only ever set by the review-lock demotion policy and is
    cleared when the lesson is mastered again. best_quiz_score is the best
    first-attempt score over all quiz attempts, in [0, 1].
    """

    lesson_id: str
    status: LessonStatus = LessonStatus.LOCKED
    completed_at: datetime | None = None
    started_at: datetime | None = None
    last_accessed_at: datetime | None = None
    sections_read: frozenset[str] = field(default_factory=frozenset)
    review_locked: bool = False
    quiz_attempts: int = 0
    best_quiz_score: float | None = None
    quiz_passed: bool = False

    @property
    def is_navigable(self) -> bool:
        return self.status is not LessonStatus.LOCKED and not self.review_locked


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a gate operation. changed is False when a guard was not met."""

    lesson_id: str
    previous: LessonStatus
    current: LessonStatus
    changed: bool
    reason: str | None = None
