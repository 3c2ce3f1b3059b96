"""
LessonProgressGate: the lesson-unlock state machine.

    locked -> available      all prerequisites completed or mastered
    available -> in-progress first content interaction
    in-progress -> completed every section read, every lesson card rated once,
                             quiz passed when the lesson has one
    completed -> mastered    every lesson card classifies MASTERED
    mastered -> completed    any lesson card drops below MASTERED

Any other edge raises InvalidTransitionError. A guard that is not met is not
an error: the result comes back with changed=False and a reason.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime

from cadence.application.config import EngineConfig
from cadence.application.graph_resolver import ensure_acyclic, topological_sort
from cadence.application.mastery import MasteryClassifier
from cadence.application.utils.time import ensure_utc
from cadence.domain.constants import DEMOTION_POLICY_REVIEW_LOCK
from cadence.domain.errors import InvalidTransitionError, NotFoundError
from cadence.domain.graph import LessonGraph
from cadence.domain.lessons.models import (
    ALLOWED_TRANSITIONS,
    Lesson,
    LessonProgress,
    LessonStatus,
    TransitionResult,
)
from cadence.domain.lessons.ports import LessonProgressRepository
from cadence.domain.memory.models import MasteryLevel
from cadence.domain.memory.ports import CardStateRepository
from cadence.domain.sessions import QuizSessionResult

logger = logging.getLogger(__name__)


class LessonProgressGate:
    def __init__(
        self,
        graph: LessonGraph,
        progress_repo: LessonProgressRepository,
        card_repo: CardStateRepository,
        classifier: MasteryClassifier | None = None,
        config: EngineConfig | None = None,
    ):
        """
        Raises:
            CurriculumError: The prerequisite graph has a cycle.
        """
        ensure_acyclic(graph)
        self.graph = graph
        self.config = config or EngineConfig()
        self.classifier = classifier or MasteryClassifier(self.config)
        self._progress = progress_repo
        self._cards = card_repo
        # One lock per lesson id; bounded by the curriculum.
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_progress(self, lesson_id: str) -> LessonProgress:
        self._lesson(lesson_id)
        stored = await self._progress.get(lesson_id)
        return stored or LessonProgress(lesson_id=lesson_id)

    async def list_progress(self) -> list[LessonProgress]:
        """Progress for every lesson, prerequisites first."""
        return [await self.get_progress(lid) for lid in topological_sort(self.graph)]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def refresh_unlocks(self, now: datetime) -> list[TransitionResult]:
        """Unlock every locked lesson whose prerequisites are done. Returns the unlocks."""
        unlocked = []
        for lesson_id in topological_sort(self.graph):
            async with self._locks[lesson_id]:
                progress = await self.get_progress(lesson_id)
                if progress.status is not LessonStatus.LOCKED:
                    continue
                if await self._unmet_prerequisites(lesson_id):
                    continue
                result = await self._commit(progress, LessonStatus.AVAILABLE, now)
            unlocked.append(result)
        return unlocked

    async def record_interaction(self, lesson_id: str, now: datetime) -> TransitionResult:
        """
        First interaction moves an available lesson to in-progress.

        Later interactions only refresh last_accessed_at.
        """
        async with self._locks[lesson_id]:
            progress = await self.get_progress(lesson_id)
            return await self._touch(progress, now)

    async def mark_section_read(
        self, lesson_id: str, section_id: str, now: datetime
    ) -> TransitionResult:
        """Reading a section is a content interaction."""
        lesson = self._lesson(lesson_id)
        if section_id not in lesson.section_ids:
            raise NotFoundError("section", f"{lesson_id}/{section_id}")

        async with self._locks[lesson_id]:
            progress = await self.get_progress(lesson_id)
            progress = replace(progress, sections_read=progress.sections_read | {section_id})
            return await self._touch(progress, now)

    async def record_quiz_result(
        self, lesson_id: str, result: QuizSessionResult, now: datetime
    ) -> TransitionResult:
        """
        Store a finished quiz attempt against the lesson.

        Taking the quiz is a content interaction. The attempt counter always
        advances; best_quiz_score keeps the highest first-attempt score and a
        passing attempt satisfies the lesson's quiz requirement for good.
        """
        async with self._locks[lesson_id]:
            progress = await self.get_progress(lesson_id)
            best = progress.best_quiz_score
            progress = replace(
                progress,
                quiz_attempts=progress.quiz_attempts + 1,
                best_quiz_score=result.score if best is None else max(best, result.score),
                quiz_passed=progress.quiz_passed or result.passed,
            )
            outcome = await self._touch(progress, now)

        logger.info(
            f"Lesson {lesson_id}: quiz attempt {progress.quiz_attempts} scored "
            f"{result.percent}% ({'passed' if result.passed else 'failed'})"
        )
        return outcome

    async def try_complete(self, lesson_id: str, now: datetime) -> TransitionResult:
        """
        Complete an in-progress lesson if every section is read and every card rated.

        Completing a lesson unlocks any dependents it was holding back.
        """
        async with self._locks[lesson_id]:
            progress = await self.get_progress(lesson_id)
            if progress.status.is_done:
                return _unchanged(progress, "already completed")
            self._check_edge(progress, LessonStatus.COMPLETED)

            reason = await self._completion_blocker(progress)
            if reason:
                return _unchanged(progress, reason)
            result = await self._commit(progress, LessonStatus.COMPLETED, now)

        await self._unlock_dependents(lesson_id, now)
        return result

    async def evaluate_mastery(self, lesson_id: str, now: datetime) -> TransitionResult:
        """
        Promote a completed lesson to mastered, or demote a mastered one.

        Card states are read inside the lesson lock so the status write is
        based on the snapshot it was evaluated against.
        """
        async with self._locks[lesson_id]:
            progress = await self.get_progress(lesson_id)
            if not progress.status.is_done:
                return _unchanged(progress, "lesson not completed")

            weakest = await self._weakest_card_level(lesson_id)
            all_mastered = weakest is MasteryLevel.MASTERED

            if progress.status is LessonStatus.COMPLETED:
                if not all_mastered:
                    return _unchanged(progress, _mastery_gap(weakest))
                return await self._commit(progress, LessonStatus.MASTERED, now)

            if all_mastered:
                return _unchanged(progress)
            return await self._commit(
                progress, LessonStatus.COMPLETED, now, reason=_mastery_gap(weakest)
            )

    async def card_reviewed(self, card_id: str, now: datetime) -> list[TransitionResult]:
        """
        Re-evaluate mastery of every done lesson that contains a reviewed card.

        Called after a rating is committed, so a lapse demotes a mastered
        lesson straight away. Returns only the lessons whose status changed.
        """
        changed = []
        for lesson_id in self.graph.lessons_for_card(card_id):
            result = await self.evaluate_mastery(lesson_id, now)
            if result.changed:
                changed.append(result)
        return changed

    async def transition(
        self, lesson_id: str, target: LessonStatus, now: datetime
    ) -> TransitionResult:
        """
        Request a specific edge. The edge must exist; its guard must hold.

        Raises:
            InvalidTransitionError: No such edge from the current status.
        """
        target = LessonStatus(target)
        progress = await self.get_progress(lesson_id)
        self._check_edge(progress, target)

        if target is LessonStatus.AVAILABLE:
            async with self._locks[lesson_id]:
                progress = await self.get_progress(lesson_id)
                self._check_edge(progress, target)
                missing = await self._unmet_prerequisites(lesson_id)
                if missing:
                    return _unchanged(progress, f"prerequisites not completed: {missing}")
                return await self._commit(progress, target, now)
        if target is LessonStatus.IN_PROGRESS:
            return await self.record_interaction(lesson_id, now)
        if target is LessonStatus.COMPLETED and progress.status is LessonStatus.IN_PROGRESS:
            return await self.try_complete(lesson_id, now)
        # completed <-> mastered both hinge on card mastery
        result = await self.evaluate_mastery(lesson_id, now)
        if result.changed or result.reason:
            return result
        return _unchanged(await self.get_progress(lesson_id), "every lesson card is still Mastered")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lesson(self, lesson_id: str) -> Lesson:
        lesson = self.graph.nodes.get(lesson_id)
        if lesson is None:
            raise NotFoundError("lesson", lesson_id)
        return lesson

    @staticmethod
    def _check_edge(progress: LessonProgress, target: LessonStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[progress.status]:
            raise InvalidTransitionError(
                f"lesson {progress.lesson_id}", progress.status.value, target.value
            )

    async def _touch(self, progress: LessonProgress, now: datetime) -> TransitionResult:
        now = ensure_utc(now)
        if progress.status is LessonStatus.AVAILABLE:
            progress = replace(progress, started_at=progress.started_at or now)
            return await self._commit(progress, LessonStatus.IN_PROGRESS, now)
        if progress.status is LessonStatus.LOCKED:
            self._check_edge(progress, LessonStatus.IN_PROGRESS)

        await self._progress.save(replace(progress, last_accessed_at=now))
        return _unchanged(progress)

    async def _commit(
        self,
        progress: LessonProgress,
        target: LessonStatus,
        now: datetime,
        reason: str | None = None,
    ) -> TransitionResult:
        self._check_edge(progress, target)
        now = ensure_utc(now)

        updated = replace(progress, status=target, last_accessed_at=now)
        if target is LessonStatus.COMPLETED and progress.completed_at is None:
            updated = replace(updated, completed_at=now)
        if target is LessonStatus.MASTERED:
            updated = replace(updated, review_locked=False)
        if (
            target is LessonStatus.COMPLETED
            and progress.status is LessonStatus.MASTERED
            and self.config.demotion_policy == DEMOTION_POLICY_REVIEW_LOCK
        ):
            updated = replace(updated, review_locked=True)

        await self._progress.save(updated)
        logger.info(
            f"Lesson {progress.lesson_id}: {progress.status.value} -> {target.value}"
            + (f" ({reason})" if reason else "")
        )
        return TransitionResult(
            lesson_id=progress.lesson_id,
            previous=progress.status,
            current=target,
            changed=True,
            reason=reason,
        )

    async def _unmet_prerequisites(self, lesson_id: str) -> list[str]:
        missing = []
        for prereq_id in self.graph.get_prerequisites(lesson_id):
            if prereq_id not in self.graph.nodes:
                continue  # reported at load time
            stored = await self._progress.get(prereq_id)
            if stored is None or not stored.status.is_done:
                missing.append(prereq_id)
        return missing

    async def _completion_blocker(self, progress: LessonProgress) -> str | None:
        lesson = self._lesson(progress.lesson_id)
        unread = [s for s in lesson.section_ids if s not in progress.sections_read]
        if unread:
            return f"sections not read: {unread}"
        if lesson.has_quiz and not progress.quiz_passed:
            return "quiz not passed"

        states = {s.card_id: s for s in await self._cards.get_many(list(lesson.card_ids))}
        unrated = [
            cid
            for cid in lesson.card_ids
            if cid not in states or states[cid].last_reviewed_at is None
        ]
        if unrated:
            return f"cards not yet rated: {unrated}"
        return None

    async def _weakest_card_level(self, lesson_id: str) -> MasteryLevel | None:
        card_ids = list(self._lesson(lesson_id).card_ids)
        if not card_ids:
            return None
        states = {s.card_id: s for s in await self._cards.get_many(card_ids)}
        return min(self.classifier.classify(states.get(cid)) for cid in card_ids)

    async def _unlock_dependents(self, lesson_id: str, now: datetime) -> None:
        for dependent_id in self.graph.get_dependents(lesson_id):
            async with self._locks[dependent_id]:
                progress = await self.get_progress(dependent_id)
                if progress.status is not LessonStatus.LOCKED:
                    continue
                if await self._unmet_prerequisites(dependent_id):
                    continue
                await self._commit(progress, LessonStatus.AVAILABLE, now)


def _unchanged(progress: LessonProgress, reason: str | None = None) -> TransitionResult:
    return TransitionResult(
        lesson_id=progress.lesson_id,
        previous=progress.status,
        current=progress.status,
        changed=False,
        reason=reason,
    )


def _mastery_gap(weakest: MasteryLevel | None) -> str:
    if weakest is None:
        return "lesson has no review cards"
    return f"weakest card is {weakest.label}"
