"""
In-memory repositories. Process-local; everything is lost on exit.
"""

from cadence.domain.lessons.models import LessonProgress
from cadence.domain.lessons.ports import LessonProgressRepository
from cadence.domain.memory.models import CardMemoryState, ReviewLogEntry
from cadence.domain.memory.ports import CardStateRepository


class InMemoryCardStateRepository(CardStateRepository):
    def __init__(self, states: list[CardMemoryState] | None = None):
        self._states: dict[str, CardMemoryState] = {s.card_id: s for s in states or []}
        self._logs: list[ReviewLogEntry] = []

    async def get(self, card_id: str) -> CardMemoryState | None:
        return self._states.get(card_id)

    async def get_many(self, card_ids: list[str]) -> list[CardMemoryState]:
        return [self._states[cid] for cid in card_ids if cid in self._states]

    async def list_all(self) -> list[CardMemoryState]:
        return list(self._states.values())

    async def save(self, state: CardMemoryState) -> None:
        self._states[state.card_id] = state

    async def append_log(self, entry: ReviewLogEntry) -> None:
        self._logs.append(entry)

    async def commit_review(self, state: CardMemoryState, entry: ReviewLogEntry) -> None:
        self._states[state.card_id] = state
        self._logs.append(entry)

    async def get_review_history(self, card_ids: list[str]) -> list[ReviewLogEntry]:
        wanted = set(card_ids)
        return sorted(
            (e for e in self._logs if e.card_id in wanted),
            key=lambda e: e.reviewed_at,
        )


class InMemoryLessonProgressRepository(LessonProgressRepository):
    def __init__(self):
        self._progress: dict[str, LessonProgress] = {}

    async def get(self, lesson_id: str) -> LessonProgress | None:
        return self._progress.get(lesson_id)

    async def list_all(self) -> list[LessonProgress]:
        return list(self._progress.values())

    async def save(self, progress: LessonProgress) -> None:
        self._progress[progress.lesson_id] = progress
