"""
Tidings Sync Cursor Store
-------------------------
Small key-value state holding one SyncCursor per source, kept outside the
record database. The ingestion coordinator reads a cursor, runs a batch with
it, and writes back the cursor value the batch returns.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict

from tidings.core.types import SyncCursor
from tidings.store.lock import lock_for

logger = logging.getLogger("Tidings.Cursor")


class CursorStore:
    """In-memory cursor store; also the interface the coordinator depends on."""

    def __init__(self):
        self._cursors: Dict[str, SyncCursor] = {}
        self._lock = threading.Lock()

    def load(self, source: str) -> SyncCursor:
        with self._lock:
            return self._cursors.get(source, SyncCursor())

    def save(self, source: str, cursor: SyncCursor) -> None:
        with self._lock:
            self._cursors[source] = cursor

    def clear(self, source: str) -> None:
        with self._lock:
            self._cursors.pop(source, None)


class JsonCursorStore(CursorStore):
    """
    Cursor store persisted as a JSON document ``{source: {last_sync_at, last_external_id}}``.

    Every write rewrites the whole file under a portalocker sidecar lock and
    an atomic rename, so a crash mid-write never leaves a torn cursor.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file_lock = lock_for(self.path)

    def _read_all(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            logger.warning("Corrupt sync state at %s (%s); starting from empty cursors", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, dict]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def load(self, source: str) -> SyncCursor:
        with self._lock, self._file_lock.acquire():
            entry = self._read_all().get(source)
        try:
            if entry is not None and not isinstance(entry, dict):
                raise TypeError(f"expected an object, got {type(entry).__name__}")
            return SyncCursor.from_dict(entry)
        except (TypeError, ValueError) as e:
            logger.warning("Corrupt sync state for %s at %s (%s); starting from an empty cursor", source, self.path, e)
            return SyncCursor()

    def save(self, source: str, cursor: SyncCursor) -> None:
        with self._lock, self._file_lock.acquire():
            data = self._read_all()
            data[source] = cursor.to_dict()
            self._write_all(data)
        logger.debug("Cursor saved for %s: %s", source, cursor)

    def clear(self, source: str) -> None:
        with self._lock, self._file_lock.acquire():
            data = self._read_all()
            if data.pop(source, None) is not None:
                self._write_all(data)
        logger.info("Sync cursor cleared for %s", source)
