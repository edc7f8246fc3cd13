"""String-keyed durable stores backing the local cache.

Values are opaque strings (JSON documents written by ``LocalCache``), which
keeps the stores interchangeable: the in-memory one for tests and embedding,
the file-backed one for a process that must survive restarts.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Protocol

from quiz_proctor.core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Synchronous string key-value capability injected into the services."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value for {key!r} must be a string, got {type(value).__name__}.")
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class JsonFileKeyValueStore:
    """Store persisted as a single JSON object on disk.

    Every ``set`` rewrites the file through a temporary sibling and an atomic
    rename, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, file_path: Path) -> None:
        self._path = Path(file_path).expanduser().resolve()
        self._lock = Lock()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value for {key!r} must be a string, got {type(value).__name__}.")
        with self._lock:
            data = {**self._load(), key: value}
            self._flush(data)
            self._data = data

    def remove(self, key: str) -> None:
        with self._lock:
            data = dict(self._load())
            if data.pop(key, None) is not None:
                self._flush(data)
                self._data = data

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load())

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Cannot read cache file {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StorageError(f"Cache file {self._path} does not contain a JSON object.")
        self._data = {str(key): value for key, value in raw.items() if isinstance(value, str)}
        return self._data

    def _flush(self, data: dict[str, str]) -> None:
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(temp_path, self._path)
        except OSError as exc:
            raise StorageError(f"Cannot write cache file {self._path}: {exc}") from exc
        logger.debug("Flushed %d cache keys to %s", len(data), self._path)
