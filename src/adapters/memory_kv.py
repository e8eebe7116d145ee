"""
In-Memory KV Store Adapter.

Implements KVStorePort with a dict guarded by a lock. Used by tests and by
single-process development servers (INBOX_KV_BACKEND=memory).

Values are JSON round-tripped on the way in and out so that no caller ever
holds a reference into stored state, which mirrors how an external store
behaves.
"""

from __future__ import annotations

import json
from threading import Lock
from typing import Any

from src.core.ports.kv import VersionConflictError, VersionedValue


def _copy(value: dict[str, Any]) -> dict[str, Any]:
    copied: dict[str, Any] = json.loads(json.dumps(value))
    return copied


class InMemoryKVStore:
    def __init__(self) -> None:
        self._data: dict[str, tuple[dict[str, Any], int]] = {}
        self._lock = Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._data.get(key)
            return _copy(entry[0]) if entry else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        stored = _copy(value)
        with self._lock:
            current = self._data.get(key)
            version = current[1] + 1 if current else 1
            self._data[key] = (stored, version)

    def get_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        with self._lock:
            return [_copy(v) for k, (v, _) in self._data.items() if k.startswith(prefix)]

    def get_versioned(self, key: str) -> VersionedValue | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            return VersionedValue(value=_copy(entry[0]), version=entry[1])

    def compare_and_set(
        self,
        key: str,
        value: dict[str, Any],
        expected_version: int | None,
    ) -> int:
        stored = _copy(value)
        with self._lock:
            current = self._data.get(key)
            current_version = current[1] if current else None
            if current_version != expected_version:
                raise VersionConflictError(key, expected_version)
            new_version = (current_version or 0) + 1
            self._data[key] = (stored, new_version)
            return new_version

    def ping(self) -> None:
        return None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
