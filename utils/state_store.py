"""Durable key/value state shared across execution contexts."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any, Protocol

from utils.file_utils import load_json, save_json
from utils.log_utils import tprint


class StateStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStateStore:
    """Process-local store. Survives runner instances, not the process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class JsonFileStateStore:
    """Session-scoped store persisted as one JSON document per session."""

    def __init__(self, directory: str | Path, session_id: str = "default") -> None:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", session_id) or "default"
        self.path = Path(directory) / f"{safe_id}.json"
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        try:
            data = load_json(self.path)
        except ValueError as exc:
            tprint(f"[STATE][WARN] Ignoring unreadable state file {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            save_json(self.path, data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            save_json(self.path, data)
