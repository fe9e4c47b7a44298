"""Persistent key-value state for the tracker.

One small JSON file per install, holding the cached relay endpoint
(``serverUrl``), the stable device id (``deviceId``) and saved sessions
(``savedSessions``). Every write replaces the file atomically.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from tracker.models import Session

log = structlog.get_logger()

SERVER_URL_KEY = "serverUrl"
DEVICE_ID_KEY = "deviceId"
SAVED_SESSIONS_KEY = "savedSessions"


class LocalStore:

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            log.warning("state_unreadable", path=str(self._path), exc_info=True)
            return {}
        if not isinstance(data, dict):
            log.warning("state_unreadable", path=str(self._path))
            return {}
        return data

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def save_session(self, session: Session, device_id: str) -> dict:
        """Append a finished session to ``savedSessions`` and return the entry."""
        entry = session.to_dict()
        entry["userId"] = device_id
        entry["saved_at"] = datetime.now(timezone.utc).isoformat()
        saved = list(self._data.get(SAVED_SESSIONS_KEY) or [])
        saved.append(entry)
        self.set(SAVED_SESSIONS_KEY, saved)
        log.info("session_saved", points=len(session.points), distance_m=entry["distance_m"])
        return entry

    def saved_sessions(self) -> list[dict]:
        return list(self._data.get(SAVED_SESSIONS_KEY) or [])
