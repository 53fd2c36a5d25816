from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from photojobs.domain.models import (
    GenerationRequest,
    HistoryEntry,
    HistoryFilter,
    JobHandle,
    StatusSnapshot,
)


class JobSubmitter(ABC):
    @abstractmethod
    async def submit(self, request: GenerationRequest) -> JobHandle:
        """Queues the request remotely. Raises SubmissionError."""
        pass


class StatusSource(ABC):
    @abstractmethod
    async def poll_once(self, handle: JobHandle) -> StatusSnapshot:
        """Exactly one status lookup. Raises PollError."""
        pass


class HistoryStore(ABC):
    @abstractmethod
    async def append(self, entry: HistoryEntry, only_if: Optional[Callable[[], bool]] = None) -> bool:
        """
        Records the entry unless `only_if` returns False at commit time.
        Returns whether the entry was recorded. A raised error leaves the store unchanged.
        """
        pass

    @abstractmethod
    async def list(self, filter: Optional[HistoryFilter] = None, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Most-recent-first."""
        pass


class QueueProvider(ABC):
    """The inference queue behind the edit endpoint (fal.ai)."""

    @abstractmethod
    async def submit(self, model: str, payload: dict[str, Any]) -> str:
        """Returns the provider's request id"""
        pass

    @abstractmethod
    async def status(self, model: str, request_id: str) -> StatusSnapshot:
        """Includes images once the request is COMPLETED"""
        pass
