"""
SQLite KV Store Adapter.

Implements KVStorePort on a single table:

    kv_store(key TEXT PRIMARY KEY, value TEXT NOT NULL, version INTEGER NOT NULL)

compare_and_set is one conditional statement (INSERT for absent keys,
UPDATE ... WHERE version = ? otherwise), so SQLite's write lock makes it atomic
across threads and processes sharing the file.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from src.core.ports.kv import KVStoreError, VersionConflictError, VersionedValue

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    version INTEGER NOT NULL
)
"""


class SQLiteKVStore:
    def __init__(self, db_path: str, *, timeout_seconds: float = 30.0):
        self.db_path = db_path
        self.timeout_seconds = timeout_seconds
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_conn()
        try:
            conn.execute(_SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path, timeout=self.timeout_seconds)
        except sqlite3.Error as e:
            raise KVStoreError(f"Cannot open KV store at {self.db_path}: {e}") from e

    def get(self, key: str) -> dict[str, Any] | None:
        entry = self.get_versioned(key)
        return entry.value if entry else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, version) VALUES (?, ?, 1)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    version=kv_store.version + 1
                """,
                (key, json.dumps(value)),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise KVStoreError(f"Write failed for '{key}': {e}") from e
        finally:
            conn.close()

    def get_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT value FROM kv_store WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as e:
            raise KVStoreError(f"Prefix scan failed for '{prefix}': {e}") from e
        finally:
            conn.close()
        return [json.loads(row[0]) for row in rows]

    def get_versioned(self, key: str) -> VersionedValue | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value, version FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise KVStoreError(f"Read failed for '{key}': {e}") from e
        finally:
            conn.close()
        if not row:
            return None
        return VersionedValue(value=json.loads(row[0]), version=int(row[1]))

    def compare_and_set(
        self,
        key: str,
        value: dict[str, Any],
        expected_version: int | None,
    ) -> int:
        payload = json.dumps(value)
        conn = self._get_conn()
        try:
            if expected_version is None:
                try:
                    conn.execute(
                        "INSERT INTO kv_store (key, value, version) VALUES (?, ?, 1)",
                        (key, payload),
                    )
                except sqlite3.IntegrityError as e:
                    conn.rollback()
                    raise VersionConflictError(key, expected_version) from e
                conn.commit()
                return 1

            cursor = conn.execute(
                "UPDATE kv_store SET value = ?, version = version + 1 "
                "WHERE key = ? AND version = ?",
                (payload, key, expected_version),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                logger.debug("Stale version %s for %s", expected_version, key)
                raise VersionConflictError(key, expected_version)
            conn.commit()
            return expected_version + 1
        except VersionConflictError:
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise KVStoreError(f"Conditional write failed for '{key}': {e}") from e
        finally:
            conn.close()

    def ping(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise KVStoreError(f"KV store unreachable: {e}") from e
        finally:
            conn.close()
