"""
Key-Value Store Adapter Interface.

Protocol-based interface over the external durable store that owns every
invite, profile and message record. Implementations: SQLite (durable),
in-memory (tests and single-process dev).

Invariants:
- Values are JSON objects; callers never share references with stored state
- Every key carries a version that increases by one on each write
- compare_and_set is the only primitive used for read-modify-write cycles
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class VersionedValue:
    """A stored value together with the version it was read at."""

    value: dict[str, Any]
    version: int


class KVStorePort(Protocol):
    """
    Durable key-value store port.

    No business logic lives behind this interface.
    """

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the value stored under key, or None."""
        ...

    def set(self, key: str, value: dict[str, Any]) -> None:
        """Unconditionally write value under key (last writer wins)."""
        ...

    def get_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        """Return every value whose key starts with prefix, in no particular order."""
        ...

    def get_versioned(self, key: str) -> VersionedValue | None:
        """Return value and current version, or None if the key is absent."""
        ...

    def compare_and_set(
        self,
        key: str,
        value: dict[str, Any],
        expected_version: int | None,
    ) -> int:
        """
        Write value only if the stored version still equals expected_version.

        Args:
            key: Record key
            value: Full replacement record
            expected_version: Version read earlier, or None to require the key
                to be absent

        Returns:
            The new version

        Raises:
            VersionConflictError: If another writer got there first
        """
        ...

    def ping(self) -> None:
        """Raise KVStoreError if the store is unreachable."""
        ...


class KVStoreError(Exception):
    """Base class for store failures (transient or permanent)."""


class VersionConflictError(KVStoreError):
    """Raised when a compare-and-set loses against a concurrent writer."""

    def __init__(self, key: str, expected_version: int | None):
        self.key = key
        self.expected_version = expected_version
        super().__init__(f"Version conflict on '{key}' (expected {expected_version})")
