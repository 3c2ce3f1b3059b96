"""
JSON Store: single-document file persistence for card and lesson state.

The document is loaded once, kept in memory and rewritten atomically
(temp file + rename) after every change. Both repositories share one
JsonStore so card and lesson writes never overwrite each other.

Changes go through JsonStore.commit: the new document is written first and
the in-memory maps are swapped only after the write succeeded, so a failed
write leaves readers on the last persisted state.
"""

import logging
import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from cadence.domain.errors import CadenceError
from cadence.domain.lessons.models import LessonProgress
from cadence.domain.lessons.ports import LessonProgressRepository
from cadence.domain.memory.models import CardMemoryState, ReviewLogEntry
from cadence.domain.memory.ports import CardStateRepository

logger = logging.getLogger(__name__)


@dataclass
class StoreDocument:
    version: int = 1
    cards: list[CardMemoryState] = field(default_factory=list)
    review_logs: list[ReviewLogEntry] = field(default_factory=list)
    lessons: list[LessonProgress] = field(default_factory=list)


_DOCUMENT = TypeAdapter(StoreDocument)


class JsonStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._cards: dict[str, CardMemoryState] = {}
        self._logs: list[ReviewLogEntry] = []
        self._lessons: dict[str, LessonProgress] = {}
        self._loaded = False

    def load(self) -> None:
        if self._loaded:
            return
        if self.path.exists():
            try:
                doc = _DOCUMENT.validate_json(self.path.read_bytes())
            except ValidationError as e:
                raise CadenceError(f"Corrupt store file {self.path}: {e}") from e
            self._cards = {s.card_id: s for s in doc.cards}
            self._logs = list(doc.review_logs)
            self._lessons = {p.lesson_id: p for p in doc.lessons}
            logger.debug(
                f"Loaded {len(self._cards)} card(s), {len(self._lessons)} lesson(s) from {self.path}"
            )
        self._loaded = True

    def commit(
        self,
        cards: Iterable[CardMemoryState] = (),
        logs: Iterable[ReviewLogEntry] = (),
        lessons: Iterable[LessonProgress] = (),
    ) -> None:
        """Persist the given changes in a single write, then publish them in memory."""
        self.load()
        new_cards = {**self._cards, **{s.card_id: s for s in cards}}
        new_logs = [*self._logs, *logs]
        new_lessons = {**self._lessons, **{p.lesson_id: p for p in lessons}}

        self.flush(
            StoreDocument(
                cards=list(new_cards.values()),
                review_logs=new_logs,
                lessons=list(new_lessons.values()),
            )
        )
        self._cards, self._logs, self._lessons = new_cards, new_logs, new_lessons

    def flush(self, doc: StoreDocument) -> None:
        payload = _DOCUMENT.dump_json(doc, indent=2)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    @property
    def cards(self) -> dict[str, CardMemoryState]:
        self.load()
        return self._cards

    @property
    def logs(self) -> list[ReviewLogEntry]:
        self.load()
        return self._logs

    @property
    def lessons(self) -> dict[str, LessonProgress]:
        self.load()
        return self._lessons


class JsonCardStateRepository(CardStateRepository):
    def __init__(self, store: JsonStore):
        self._store = store

    async def get(self, card_id: str) -> CardMemoryState | None:
        return self._store.cards.get(card_id)

    async def get_many(self, card_ids: list[str]) -> list[CardMemoryState]:
        cards = self._store.cards
        return [cards[cid] for cid in card_ids if cid in cards]

    async def list_all(self) -> list[CardMemoryState]:
        return list(self._store.cards.values())

    async def save(self, state: CardMemoryState) -> None:
        self._store.commit(cards=[state])

    async def append_log(self, entry: ReviewLogEntry) -> None:
        self._store.commit(logs=[entry])

    async def commit_review(self, state: CardMemoryState, entry: ReviewLogEntry) -> None:
        self._store.commit(cards=[state], logs=[entry])

    async def get_review_history(self, card_ids: list[str]) -> list[ReviewLogEntry]:
        wanted = set(card_ids)
        return sorted(
            (e for e in self._store.logs if e.card_id in wanted),
            key=lambda e: e.reviewed_at,
        )


class JsonLessonProgressRepository(LessonProgressRepository):
    def __init__(self, store: JsonStore):
        self._store = store

    async def get(self, lesson_id: str) -> LessonProgress | None:
        return self._store.lessons.get(lesson_id)

    async def list_all(self) -> list[LessonProgress]:
        return list(self._store.lessons.values())

    async def save(self, progress: LessonProgress) -> None:
        self._store.commit(lessons=[progress])
