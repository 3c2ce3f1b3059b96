"""
Ports (interfaces) for card state persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import CardMemoryState, ReviewLogEntry


class CardStateRepository(ABC):
    """
    Port for loading and storing card memory state.

    Implementations:
        - InMemoryCardStateRepository: Process-local dictionaries.
        - JsonCardStateRepository: Single JSON document on disk.
    """

    @abstractmethod
    async def get(self, card_id: str) -> CardMemoryState | None:
        """Return the stored state, or None for an unknown card."""
        pass

    @abstractmethod
    async def get_many(self, card_ids: list[str]) -> list[CardMemoryState]:
        """
        Fetch states for the given ids.

        Unknown ids are skipped; order follows card_ids.
        """
        pass

    @abstractmethod
    async def list_all(self) -> list[CardMemoryState]:
        """Return a snapshot of every stored state."""
        pass

    @abstractmethod
    async def save(self, state: CardMemoryState) -> None:
        """Insert or replace the state for state.card_id."""
        pass

    @abstractmethod
    async def append_log(self, entry: ReviewLogEntry) -> None:
        """Append a review log entry. Entries are never rewritten."""
        pass

    @abstractmethod
    async def commit_review(self, state: CardMemoryState, entry: ReviewLogEntry) -> None:
        """
        Persist a reviewed state and its log entry together.

        Either both are stored or neither is; a failed write leaves the
        previous state readable.
        """
        pass

    @abstractmethod
    async def get_review_history(self, card_ids: list[str]) -> list[ReviewLogEntry]:
        """
        Fetch review history for the given card ids.

        Returns:
            List of ReviewLogEntry objects, sorted by reviewed_at ascending.
        """
        pass
