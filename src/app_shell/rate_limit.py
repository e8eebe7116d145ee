import logging
from datetime import datetime, timedelta
from threading import Lock
from typing import Protocol

from src.adapters.clock import SystemClock
from src.rules.models import RateLimitRules

logger = logging.getLogger(__name__)


class TimePort(Protocol):
    """Protocol for time operations (enables testing with deterministic time)."""

    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...


class RateLimiter:
    """Sliding-window limiter for the unauthenticated routes, keyed by client address."""

    def __init__(
        self,
        rules: RateLimitRules,
        time_port: TimePort | None = None,
    ):
        self.rules = rules
        self._time = time_port if time_port is not None else SystemClock()
        self._history: dict[str, list[datetime]] = {}
        self._lock = Lock()
        # Keys idle longer than the longest window can never limit anyone again.
        self._retention = timedelta(
            seconds=max(rules.invite_lookup.window_seconds, rules.signup.window_seconds)
        )
        self._last_sweep = self._time.now_utc()

    def _cleanup(self, key: str, window: int) -> None:
        cutoff = self._time.now_utc() - timedelta(seconds=window)
        if key in self._history:
            self._history[key] = [t for t in self._history[key] if t > cutoff]
            if not self._history[key]:
                del self._history[key]

    def _sweep(self) -> None:
        """Drop every client whose newest attempt fell out of the retention window."""
        now = self._time.now_utc()
        if now - self._last_sweep < self._retention:
            return

        cutoff = now - self._retention
        stale = [key for key, times in self._history.items() if not times or times[-1] <= cutoff]
        for key in stale:
            del self._history[key]
        self._last_sweep = now
        if stale:
            logger.debug("Swept %d idle rate-limit keys", len(stale))

    def allow_request(self, key: str, window: int, limit: int) -> bool:
        """
        Check if request is allowed.
        If allowed, records the attempt and returns True.
        If denied, returns False.
        """
        if limit <= 0:
            return False

        with self._lock:
            self._sweep()
            self._cleanup(key, window)
            current_count = len(self._history.get(key, []))

            if current_count >= limit:
                logger.warning("Rate limit hit for %s (%d in %ds)", key, current_count, window)
                return False

            self._history.setdefault(key, []).append(self._time.now_utc())
            return True

    def check_invite_lookup(self, client: str) -> bool:
        cfg = self.rules.invite_lookup
        limit = cfg.max_requests if cfg.max_requests is not None else 30

        return self.allow_request(f"invite_lookup:{client}", cfg.window_seconds, limit)

    def check_signup(self, client: str) -> bool:
        cfg = self.rules.signup
        limit = cfg.max_attempts if cfg.max_attempts is not None else 10

        return self.allow_request(f"signup:{client}", cfg.window_seconds, limit)

    def reset(self) -> None:
        with self._lock:
            self._history.clear()

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._history)
