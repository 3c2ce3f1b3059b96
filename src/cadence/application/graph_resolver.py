"""
Graph resolver for building the lesson prerequisite graph from a curriculum file.

Curriculum YAML layout:

    modules:
      - id: "1"
        title: Foundations
        lessons:
          - id: "1.1"
            title: What is a tensor
            prerequisites: []
            sections: [intro, shapes]
            cards: [c-1-1-a, c-1-1-b]
            quiz: true          # optional; completion then needs a passed quiz

Provides cycle detection and ordering utilities over the resulting graph.
"""

import logging
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Any

import yaml

from cadence.domain.errors import CurriculumError
from cadence.domain.graph import LessonGraph
from cadence.domain.lessons.models import Lesson

logger = logging.getLogger(__name__)


def _str_list(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise CurriculumError(f"{where}: expected a list, got {type(value).__name__}")
    return tuple(str(v) for v in value)


def build_graph(data: dict[str, Any]) -> LessonGraph:
    """
    Build a LessonGraph from already-parsed curriculum data.

    Raises:
        CurriculumError: Structural problems (missing ids, duplicate lessons).
    """
    if not isinstance(data, dict) or not isinstance(data.get("modules"), list):
        raise CurriculumError("curriculum must contain a 'modules' list")

    graph = LessonGraph()

    for m_index, module in enumerate(data["modules"]):
        if not isinstance(module, dict) or "id" not in module:
            raise CurriculumError(f"module #{m_index + 1} has no id")
        module_id = str(module["id"])

        lessons = module.get("lessons") or []
        if not isinstance(lessons, list):
            raise CurriculumError(f"module {module_id}: 'lessons' must be a list")

        for l_index, raw in enumerate(lessons):
            if not isinstance(raw, dict) or "id" not in raw:
                raise CurriculumError(f"module {module_id}: lesson #{l_index + 1} has no id")
            lesson_id = str(raw["id"])
            if lesson_id in graph.nodes:
                raise CurriculumError(f"duplicate lesson id: {lesson_id}")

            quiz = raw.get("quiz", False)
            if not isinstance(quiz, bool):
                raise CurriculumError(f"lesson {lesson_id}: 'quiz' must be true or false")

            where = f"lesson {lesson_id}"
            graph.add_lesson(
                Lesson(
                    id=lesson_id,
                    module_id=module_id,
                    title=str(raw.get("title", lesson_id)),
                    prerequisites=_str_list(raw.get("prerequisites"), f"{where} prerequisites"),
                    section_ids=_str_list(raw.get("sections"), f"{where} sections"),
                    card_ids=_str_list(raw.get("cards"), f"{where} cards"),
                    has_quiz=quiz,
                )
            )

    graph.resolve()
    for lesson_id, missing in graph.unresolved_refs.items():
        if missing:
            logger.warning(f"Lesson {lesson_id} references unknown prerequisites: {missing}")

    return graph


def load_curriculum(path: Path) -> LessonGraph:
    """
    Load and resolve a curriculum YAML file.

    Raises:
        CurriculumError: Unreadable file, invalid YAML or malformed structure.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise CurriculumError(f"cannot read curriculum {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CurriculumError(f"invalid YAML in {path}: {e}") from e

    graph = build_graph(data)
    logger.info(
        f"Loaded curriculum {path}: {len(graph.modules)} module(s), "
        f"{len(graph.nodes)} lesson(s), {graph.edge_count} prerequisite edge(s)"
    )
    return graph


def detect_cycles(graph: LessonGraph) -> list[list[str]]:
    """
    Detect a prerequisite cycle.

    Returns an empty list when the graph is acyclic, otherwise a single-item
    list holding the lesson ids that form the cycle.
    """
    sorter = TopologicalSorter[str]()

    for lesson_id in graph.nodes:
        valid_prereqs = [p for p in graph.get_prerequisites(lesson_id) if p in graph.nodes]
        sorter.add(lesson_id, *valid_prereqs)

    try:
        list(sorter.static_order())
        return []
    except CycleError as e:
        # e.args[1] holds the cycle path
        if len(e.args) > 1 and isinstance(e.args[1], list):
            return [e.args[1]]
        return [[]]


def ensure_acyclic(graph: LessonGraph) -> None:
    cycles = detect_cycles(graph)
    if cycles:
        raise CurriculumError(f"prerequisite cycle: {' -> '.join(cycles[0])}")


def topological_sort(graph: LessonGraph, lesson_ids: list[str] | None = None) -> list[str]:
    """
    Order lessons so prerequisites come before dependents.

    Args:
        graph: The lesson graph
        lesson_ids: Subset to sort; defaults to every lesson

    Returns:
        Sorted lesson ids. On a cycle, the input order with a warning.
    """
    ids = list(graph.nodes) if lesson_ids is None else lesson_ids
    valid_ids = [lid for lid in dict.fromkeys(ids) if lid in graph.nodes]
    subset = set(valid_ids)

    sorter = TopologicalSorter[str]()
    for lesson_id in valid_ids:
        sorter.add(lesson_id, *[p for p in graph.get_prerequisites(lesson_id) if p in subset])

    try:
        return list(sorter.static_order())
    except CycleError:
        logger.warning("Cycle detected in lesson prerequisites, using original order")
        return valid_ids
