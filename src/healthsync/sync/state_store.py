"""Durable storage of the last successful sync time.

``last_sync_date`` is the only pipeline state that must survive a restart.
It is stored as a small JSON document::

    {"last_sync_date": "2026-02-23T07:15:00+00:00"}
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger("amach.healthsync.sync.state_store")


@dataclass
class PersistedSyncState:
    """Persistent sync state."""

    last_sync_date: datetime | None = None

    def to_json(self) -> dict:
        return {
            "last_sync_date": (
                self.last_sync_date.isoformat() if self.last_sync_date else None
            ),
        }

    @classmethod
    def from_json(cls, data: dict) -> "PersistedSyncState":
        state = cls()
        if raw := data.get("last_sync_date"):
            try:
                state.last_sync_date = datetime.fromisoformat(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring unparseable last_sync_date: %r", raw)
        return state


class SyncStateStore(Protocol):
    def load(self) -> PersistedSyncState: ...

    def save(self, state: PersistedSyncState) -> None: ...


class InMemorySyncStateStore:
    """Non-durable store, for tests and one-shot runs."""

    def __init__(self, state: PersistedSyncState | None = None) -> None:
        self._state = state or PersistedSyncState()

    def load(self) -> PersistedSyncState:
        return PersistedSyncState(last_sync_date=self._state.last_sync_date)

    def save(self, state: PersistedSyncState) -> None:
        self._state = PersistedSyncState(last_sync_date=state.last_sync_date)


class FileSyncStateStore:
    """JSON file store.  Writes go to a temp file first and are renamed into place."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> PersistedSyncState:
        if not self._path.exists():
            return PersistedSyncState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read sync state from %s: %s", self._path, exc)
            return PersistedSyncState()
        if not isinstance(data, dict):
            return PersistedSyncState()
        return PersistedSyncState.from_json(data)

    def save(self, state: PersistedSyncState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(state.to_json()), encoding="utf-8")
        os.replace(tmp, self._path)
        logger.debug("Saved sync state to %s", self._path)
