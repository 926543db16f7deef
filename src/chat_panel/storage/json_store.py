"""Read-all / write-all JSON state persistence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from chat_panel.log import get_logger

logger = get_logger(__name__)


class StateStore(Protocol):
    """Whole-state persistence: read everything, write everything."""

    def load(self) -> dict[str, Any] | None:
        ...

    def save(self, state: dict[str, Any]) -> None:
        ...


class JsonFileStore:
    """StateStore backed by one JSON file.

    ``load`` returns None when the file is absent, unreadable or not a JSON
    object. ``save`` raises on I/O errors; callers decide whether that is fatal.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def load(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.error("state_load_error", path=str(self._path), error=str(e))
            return None
        if not isinstance(data, dict):
            logger.error("state_load_error", path=str(self._path), error="not a JSON object")
            return None
        return data

    def save(self, state: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(state, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )


class MemoryStateStore:
    """StateStore that keeps state in process; used when nothing should touch disk."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._state = json.loads(json.dumps(initial)) if initial is not None else None
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        if self._state is None:
            return None
        return json.loads(json.dumps(self._state))

    def save(self, state: dict[str, Any]) -> None:
        self._state = json.loads(json.dumps(state))
        self.saves += 1
