from datetime import datetime
from typing import Protocol

from src.core.ports.kv import KVStorePort


class TimePort(Protocol):
    """Port for time operations - enables deterministic testing."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


__all__ = ["KVStorePort", "TimePort"]
