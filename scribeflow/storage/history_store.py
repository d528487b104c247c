"""JSON-file history of past transcriptions."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from .file_manager import RecordingStorage
from ..models.errors import HistoryError, StorageError
from ..models.history import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "history.json"
MAX_HISTORY_ITEMS = 100


class JsonHistoryStore:
    """History entries kept newest first in ``<data_dir>/history.json``.

    All public operations are coroutines; file access runs in the default
    executor and is serialized with a lock.
    """

    def __init__(self, data_dir: str, recording_storage: Optional[RecordingStorage] = None,
                 max_items: int = MAX_HISTORY_ITEMS):
        """Initialize the history store.

        Args:
            data_dir: Directory holding the history file
            recording_storage: Used to delete an entry's audio along with it
            max_items: Oldest entries beyond this count are dropped
        """
        self.history_file = Path(data_dir) / HISTORY_FILENAME
        self.recording_storage = recording_storage
        self.max_items = max_items
        self._lock = asyncio.Lock()

    async def create(self, storage_locator: str, duration_seconds: float, transcription_text: str) -> str:
        """Append a new entry and return its id."""
        entry = HistoryEntry.new(storage_locator, duration_seconds, transcription_text)
        async with self._lock:
            entries = await self._run(self._read)
            entries.insert(0, entry)
            entries = self._sorted(entries)[:self.max_items]
            await self._run(self._write, entries)
        logger.info(f"History entry created: {entry.id}")
        return entry.id

    async def attach_summary(self, entry_id: str, summary_text: str) -> None:
        """Attach a summary to an existing entry.

        Raises:
            HistoryError: Unknown entry or the file could not be written
        """
        async with self._lock:
            entries = await self._run(self._read)
            for index, entry in enumerate(entries):
                if entry.id == entry_id:
                    entries[index] = entry.with_summary(summary_text)
                    break
            else:
                raise HistoryError(f"History entry not found: {entry_id}")
            await self._run(self._write, entries)
        logger.info(f"Summary attached to history entry {entry_id}")

    async def list(self) -> List[HistoryEntry]:
        """All entries, newest first."""
        async with self._lock:
            return await self._run(self._read)

    async def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in await self.list():
            if entry.id == entry_id:
                return entry
        return None

    async def delete(self, entry_id: str) -> None:
        """Delete an entry and its recording file.

        A recording that cannot be removed is logged; the entry is removed
        regardless.
        """
        async with self._lock:
            entries = await self._run(self._read)
            remaining = [e for e in entries if e.id != entry_id]
            if len(remaining) == len(entries):
                raise HistoryError(f"History entry not found: {entry_id}")
            removed = next(e for e in entries if e.id == entry_id)
            await self._run(self._write, remaining)

        if self.recording_storage is not None and removed.storage_locator:
            try:
                await self.recording_storage.delete(removed.storage_locator)
            except StorageError as e:
                logger.warning(f"Could not delete recording for entry {entry_id}: {e.message}")
        logger.info(f"History entry deleted: {entry_id}")

    async def clear(self) -> int:
        """Remove every entry (recordings are kept). Returns the number removed."""
        async with self._lock:
            entries = await self._run(self._read)
            await self._run(self._write, [])
        logger.info(f"History cleared ({len(entries)} entries)")
        return len(entries)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    @staticmethod
    def _sorted(entries: List[HistoryEntry]) -> List[HistoryEntry]:
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def _read(self) -> List[HistoryEntry]:
        if not self.history_file.exists():
            return []
        try:
            with open(self.history_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return [HistoryEntry.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading history: {e}")
            raise HistoryError(f"Failed to read history: {e}") from e

    def _write(self, entries: List[HistoryEntry]) -> None:
        tmp_file = self.history_file.with_suffix('.json.tmp')
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump([entry.to_dict() for entry in entries], f, indent=2, ensure_ascii=False)
            os.replace(tmp_file, self.history_file)
        except OSError as e:
            logger.error(f"Error saving history: {e}")
            raise HistoryError(f"Failed to save history: {e}") from e
