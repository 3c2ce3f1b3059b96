"""
Lesson prerequisite graph.

Pure data structure; building it from curriculum files lives in
cadence.application.graph_resolver.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from cadence.domain.lessons.models import Lesson


@dataclass
class LessonGraph:
    """
    Directed prerequisite graph over lessons.

    An edge lesson -> prereq means "lesson requires prereq".
    """

    nodes: dict[str, Lesson] = field(default_factory=dict)
    modules: dict[str, list[str]] = field(default_factory=dict)  # module_id -> ordered lesson ids
    unresolved_refs: dict[str, list[str]] = field(default_factory=dict)
    _dependents: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    _card_index: dict[str, list[str]] = field(default_factory=dict)

    def add_lesson(self, lesson: Lesson) -> None:
        self.nodes[lesson.id] = lesson
        self.modules.setdefault(lesson.module_id, []).append(lesson.id)
        for prereq_id in lesson.prerequisites:
            self._dependents[prereq_id].append(lesson.id)
        for card_id in lesson.card_ids:
            owners = self._card_index.setdefault(card_id, [])
            if lesson.id not in owners:
                owners.append(lesson.id)

    def resolve(self) -> None:
        """Record prerequisite references that point at unknown lessons."""
        self.unresolved_refs = {
            lesson_id: [p for p in lesson.prerequisites if p not in self.nodes]
            for lesson_id, lesson in self.nodes.items()
        }

    def get_prerequisites(self, lesson_id: str) -> list[str]:
        lesson = self.nodes.get(lesson_id)
        return list(lesson.prerequisites) if lesson else []

    def get_dependents(self, lesson_id: str) -> list[str]:
        return list(self._dependents.get(lesson_id, []))

    def lessons_for_card(self, card_id: str) -> list[str]:
        """Every lesson that lists the card, in declaration order."""
        return list(self._card_index.get(card_id, []))

    @property
    def card_ids(self) -> list[str]:
        return list(self._card_index)

    @property
    def edge_count(self) -> int:
        return sum(len(lesson.prerequisites) for lesson in self.nodes.values())
