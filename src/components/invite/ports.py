from datetime import datetime
from typing import Protocol

from src.core.ports.kv import KVStorePort
from src.domain.entities import InviteCode


class FallbackCodesPort(Protocol):
    """Codes that are valid when the store has no record (e.g. demo codes)."""

    def lookup(self, code: str, now: datetime) -> InviteCode | None: ...


class TimePort(Protocol):
    """Port for time operations - enables deterministic testing."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


__all__ = ["FallbackCodesPort", "KVStorePort", "TimePort"]
