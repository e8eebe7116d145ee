"""
Optimistic read-modify-write over the KV store.

Every mutation of a stored record goes through atomic_update: read the record
and its version, build the full replacement, and write it with
compare_and_set. A lost race re-reads and re-applies, up to max_attempts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from src.core.ports.kv import KVStorePort, VersionConflictError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class RecordNotFoundError(Exception):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No record stored under '{key}'")


class RetriesExhaustedError(Exception):
    def __init__(self, key: str, attempts: int):
        self.key = key
        self.attempts = attempts
        super().__init__(f"Gave up on '{key}' after {attempts} conflicting writes")


def atomic_update(
    store: KVStorePort,
    key: str,
    mutate: Callable[[dict[str, Any]], dict[str, Any]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> dict[str, Any]:
    """
    Apply mutate to the record under key as one conditional write.

    mutate receives a private copy of the current record and returns the full
    new record. It may raise to abort; nothing is written in that case.

    Returns:
        The record as written

    Raises:
        RecordNotFoundError: If the key is absent
        RetriesExhaustedError: If every attempt lost against a concurrent writer
    """
    for attempt in range(1, max_attempts + 1):
        entry = store.get_versioned(key)
        if entry is None:
            raise RecordNotFoundError(key)

        updated = mutate(entry.value)
        try:
            store.compare_and_set(key, updated, entry.version)
            return updated
        except VersionConflictError:
            logger.warning("Concurrent write on %s (attempt %d/%d)", key, attempt, max_attempts)

    raise RetriesExhaustedError(key, max_attempts)
