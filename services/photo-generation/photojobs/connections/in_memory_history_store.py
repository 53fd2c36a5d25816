from typing import Callable, List, Optional

from photojobs.domain.interfaces import HistoryStore
from photojobs.domain.models import HistoryEntry, HistoryFilter


class InMemoryHistoryStore(HistoryStore):
    """Session-scoped history. Entries are kept in insertion order, listed newest first."""

    def __init__(self):
        self.entries: List[HistoryEntry] = []

    async def append(self, entry: HistoryEntry, only_if: Optional[Callable[[], bool]] = None) -> bool:
        # No await between the check and the append
        if only_if is not None and not only_if():
            return False
        self.entries.append(entry)
        return True

    async def list(self, filter: Optional[HistoryFilter] = None, limit: Optional[int] = None) -> List[HistoryEntry]:
        newest_first = [e for e in reversed(self.entries) if filter is None or filter.matches(e)]
        return newest_first[:limit] if limit is not None else newest_first
