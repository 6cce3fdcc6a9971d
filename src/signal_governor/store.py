"""Append-only record persistence.

Alerts, decisions and outcomes are written as they change so an
operator can reconstruct what the governor saw and did. Two backends:

- JsonlRecordStore: one JSON object per line, ``{"kind", "recorded_at", "record"}``
- MemoryRecordStore: keeps records in a list (tests, dry runs)

Write failures never stop the pipeline. ``safe_append`` logs them and
the in-memory state carries on.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the record store cannot be read or written."""


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for persistence backends."""

    def append(self, kind: str, record: BaseModel | dict[str, Any]) -> None:
        """Persist one record. Raise StoreError on failure."""
        ...


def _to_json(record: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


class JsonlRecordStore:
    """Append-only JSON-lines store. Thread-safe via a lock on writes."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, kind: str, record: BaseModel | dict[str, Any]) -> None:
        line = json.dumps(
            {
                "kind": kind,
                "recorded_at": datetime.now(tz=UTC).isoformat(),
                "record": _to_json(record),
            },
            sort_keys=True,
            default=str,
        )
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as exc:
            raise StoreError(f"Cannot write to {self._path}: {exc}") from exc

    def read(self, kind: str | None = None) -> list[dict[str, Any]]:
        """Read every entry, optionally filtered by kind."""
        if not self._path.exists():
            return []

        entries: list[dict[str, Any]] = []
        with self._path.open("r", encoding="utf-8") as f:
            for i, line in enumerate(f):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    entry = json.loads(stripped)
                except json.JSONDecodeError as exc:
                    raise StoreError(
                        f"Corrupt record at line {i + 1} of {self._path}"
                    ) from exc
                if kind is None or entry.get("kind") == kind:
                    entries.append(entry)
        return entries


class MemoryRecordStore:
    """Keeps records in memory as ``(kind, json_dict)`` pairs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[tuple[str, dict[str, Any]]] = []

    def append(self, kind: str, record: BaseModel | dict[str, Any]) -> None:
        with self._lock:
            self._records.append((kind, _to_json(record)))

    def records(self, kind: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [r for k, r in self._records if kind is None or k == kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def safe_append(
    store: RecordStore | None, kind: str, record: BaseModel | dict[str, Any],
) -> bool:
    """Append to *store*, logging instead of raising on failure."""
    if store is None:
        return False
    try:
        store.append(kind, record)
    except Exception:
        logger.exception("Failed to persist %s record", kind)
        return False
    return True
