"""Bounded, most-recent-first log of completed exams."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from .models import ExamResult

__all__ = [
    "HISTORY_KEY",
    "HISTORY_CAPACITY",
    "StorageError",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "HistoryStore",
]

HISTORY_KEY = "exam_history"
HISTORY_CAPACITY = 20


class StorageError(RuntimeError):
    """Raised when persisted state cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store holding JSON text, like browser local storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Stored value for {key!r} is not JSON") from exc

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def raw(self, key: str) -> Optional[str]:
        return self._data.get(key)


class JsonFileStore:
    """Key-value pairs kept in a single JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        try:
            document = self._read()
        except StorageError:
            document = {}
        document[key] = value
        try:
            _atomic_write_json(self._path, document)
        except OSError as exc:
            raise StorageError(f"Failed to write store: {self._path}") from exc

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read store: {self._path}") from exc
        if not isinstance(document, dict):
            raise StorageError(f"Store root must be an object: {self._path}")
        return document


class HistoryStore:
    """Owns the exam history list kept under one key of a store.

    Records are loaded lazily. Unreadable storage yields an empty history
    and malformed records are skipped; both are logged and neither raises.
    A failed write keeps the in-memory entries and records the reason in
    ``write_error`` until the next successful write.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = HISTORY_KEY,
        capacity: int = HISTORY_CAPACITY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._store = store
        self._key = key
        self._capacity = capacity
        self._logger = logger or logging.getLogger(__name__)
        self._entries: Optional[list[ExamResult]] = None
        self.write_error: Optional[str] = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def entries(self) -> tuple[ExamResult, ...]:
        return tuple(self._loaded())

    def __len__(self) -> int:
        return len(self._loaded())

    def __iter__(self) -> Iterator[ExamResult]:
        return iter(self.entries)

    def load(self) -> tuple[ExamResult, ...]:
        """Re-read the history from the backing store."""

        self._entries = self._read()
        return tuple(self._entries)

    def get(self, result_id: str) -> Optional[ExamResult]:
        for result in self._loaded():
            if result.id == result_id:
                return result
        return None

    def append(self, result: ExamResult) -> tuple[ExamResult, ...]:
        """Insert ``result`` first, evicting the oldest beyond capacity."""

        entries = [result, *self._loaded()]
        evicted = entries[self._capacity:]
        del entries[self._capacity:]
        self._entries = entries
        if not self._write():
            return tuple(entries)
        self._logger.info(
            "Stored exam result",
            extra={
                "result_id": result.id,
                "score": result.score,
                "total": result.total,
                "evicted": [item.id for item in evicted],
            },
        )
        return tuple(entries)

    def clear(self) -> None:
        self._entries = []
        self._write()

    def _loaded(self) -> list[ExamResult]:
        if self._entries is None:
            self._entries = self._read()
        return self._entries

    def _write(self) -> bool:
        payload = [result.to_dict() for result in self._loaded()]
        try:
            self._store.set(self._key, payload)
        except (StorageError, OSError) as exc:
            self.write_error = str(exc) or type(exc).__name__
            self._logger.error(
                "Failed to persist exam history",
                exc_info=True,
                extra={"key": self._key, "entries": len(payload)},
            )
            return False
        self.write_error = None
        return True

    def _read(self) -> list[ExamResult]:
        try:
            raw = self._store.get(self._key)
        except StorageError:
            self._logger.warning(
                "Exam history unreadable; starting empty",
                exc_info=True,
                extra={"key": self._key},
            )
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            self._logger.warning(
                "Exam history is not a list; starting empty",
                extra={"key": self._key, "type": type(raw).__name__},
            )
            return []
        results: list[ExamResult] = []
        for position, item in enumerate(raw):
            try:
                results.append(ExamResult.from_dict(item))
            except ValueError as exc:
                self._logger.warning(
                    "Skipping malformed exam record",
                    extra={"position": position, "reason": str(exc)},
                )
        return results[: self._capacity]


def _atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
        suffix=".tmp",
    )
    try:
        json.dump(payload, handle, indent=2)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    os.replace(handle.name, path)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
