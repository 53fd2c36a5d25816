import asyncio
import json
import os
from pathlib import Path
from typing import Callable, List, Optional

import aiofiles
import structlog
from pydantic import TypeAdapter, ValidationError

from photojobs.domain.interfaces import HistoryStore
from photojobs.domain.models import HistoryEntry, HistoryFilter

logger = structlog.get_logger()

_ENTRIES = TypeAdapter(List[HistoryEntry])


class JsonFileHistoryStore(HistoryStore):
    """
    Generation history persisted to a single JSON file.
    The file holds entries oldest-first; the whole list is rewritten on each append.
    The cache only takes an entry once the file holding it is in place.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._entries: Optional[List[HistoryEntry]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> List[HistoryEntry]:
        if self._entries is not None:
            return self._entries

        if not self.path.exists():
            self._entries = []
            return self._entries

        async with aiofiles.open(self.path, "rb") as f:
            raw = await f.read()

        try:
            self._entries = _ENTRIES.validate_json(raw) if raw.strip() else []
        except ValidationError as e:
            # Corrupt history loads as empty
            logger.warning("history_file_corrupt", path=str(self.path), error=str(e))
            self._entries = []
        return self._entries

    async def _write_tmp(self, entries: List[HistoryEntry]) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        data = json.dumps([e.model_dump(mode="json") for e in entries], ensure_ascii=False)
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(data)
        return tmp_path

    async def append(self, entry: HistoryEntry, only_if: Optional[Callable[[], bool]] = None) -> bool:
        async with self._lock:
            updated = [*await self._load(), entry]
            tmp_path = await self._write_tmp(updated)

            # No await between the check and the replace
            if only_if is not None and not only_if():
                os.remove(tmp_path)
                logger.debug("history_entry_skipped", entry_id=entry.id, tool=entry.tool)
                return False
            os.replace(tmp_path, self.path)
            self._entries = updated

        logger.info("history_entry_appended", entry_id=entry.id, tool=entry.tool, path=str(self.path))
        return True

    async def list(self, filter: Optional[HistoryFilter] = None, limit: Optional[int] = None) -> List[HistoryEntry]:
        async with self._lock:
            entries = list(await self._load())

        newest_first = [e for e in reversed(entries) if filter is None or filter.matches(e)]
        return newest_first[:limit] if limit is not None else newest_first
