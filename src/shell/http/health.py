"""
Health and metrics endpoints.

- /health: overall status from every registered check
- /health/ready: readiness probe, 503 until every check passes
- /health/live: liveness probe (process alive)
- /metrics: request counters fed by the request-logging middleware
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Protocol

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from src.core.ports.kv import KVStoreError, KVStorePort

logger = logging.getLogger(__name__)

# --- Types ---


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)


class HealthCheck(Protocol):
    name: str

    def check(self) -> CheckResult: ...


# --- Startup Tracker ---


class StartupTracker:
    """Tracks application startup time for uptime calculation."""

    _start_time: float | None = None

    @classmethod
    def mark_started(cls) -> None:
        cls._start_time = time.time()

    @classmethod
    def get_uptime_seconds(cls) -> float:
        if cls._start_time is None:
            return 0.0
        return time.time() - cls._start_time

    @classmethod
    def is_started(cls) -> bool:
        return cls._start_time is not None


# --- Metrics Collector ---


@dataclass
class MetricsSnapshot:
    request_count: int = 0
    error_count: int = 0
    rejected_count: int = 0
    avg_response_time_ms: float = 0.0
    uptime_seconds: float = 0.0


class MetricsCollector:
    """
    In-memory request counters.

    error_count counts 5xx responses; rejected_count counts 4xx responses
    (bad codes, auth failures, rate limiting).
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._request_count = 0
        self._error_count = 0
        self._rejected_count = 0
        self._total_response_time_ms = 0.0

    def record_request(self, response_time_ms: float, status_code: int = 200) -> None:
        with self._lock:
            self._request_count += 1
            self._total_response_time_ms += response_time_ms
            if status_code >= 500:
                self._error_count += 1
            elif status_code >= 400:
                self._rejected_count += 1

    def get_snapshot(self) -> MetricsSnapshot:
        with self._lock:
            avg_response_time = (
                self._total_response_time_ms / self._request_count if self._request_count > 0 else 0.0
            )
            return MetricsSnapshot(
                request_count=self._request_count,
                error_count=self._error_count,
                rejected_count=self._rejected_count,
                avg_response_time_ms=avg_response_time,
                uptime_seconds=StartupTracker.get_uptime_seconds(),
            )

    def reset(self) -> None:
        with self._lock:
            self._request_count = 0
            self._error_count = 0
            self._rejected_count = 0
            self._total_response_time_ms = 0.0


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# --- Health Check Registry ---


class HealthCheckRegistry:
    def __init__(self) -> None:
        self._checks: list[HealthCheck] = []

    def register(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def run_all(self) -> list[CheckResult]:
        return [check.check() for check in self._checks]

    def clear(self) -> None:
        self._checks = []


_registry = HealthCheckRegistry()


def get_health_registry() -> HealthCheckRegistry:
    """Get the global health check registry."""
    return _registry


# --- Built-in Checks ---


class StartupCheck:
    name = "startup"

    def check(self) -> CheckResult:
        if StartupTracker.is_started():
            return CheckResult(
                name=self.name,
                status=HealthStatus.HEALTHY,
                message="Startup complete",
                details={"uptime_seconds": StartupTracker.get_uptime_seconds()},
            )
        return CheckResult(name=self.name, status=HealthStatus.UNHEALTHY, message="Startup not complete")


class KVStoreCheck:
    """Pings the KV store."""

    name = "kv_store"

    def __init__(self, store: KVStorePort) -> None:
        self._store = store

    def check(self) -> CheckResult:
        start = time.time()
        try:
            self._store.ping()
        except KVStoreError as e:
            latency = (time.time() - start) * 1000
            logger.warning("KV store health check failed: %s", e)
            return CheckResult(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                message=f"KV store error: {e!s}",
                latency_ms=latency,
            )
        latency = (time.time() - start) * 1000
        return CheckResult(
            name=self.name, status=HealthStatus.HEALTHY, message="KV store reachable", latency_ms=latency
        )


def _overall(results: list[CheckResult]) -> HealthStatus:
    if all(r.status == HealthStatus.HEALTHY for r in results):
        return HealthStatus.HEALTHY
    if any(r.status == HealthStatus.UNHEALTHY for r in results):
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


# --- FastAPI Router ---


def create_health_router(
    service: str = "invite-inbox",
    version: str = "0.0.0",
    registry: HealthCheckRegistry | None = None,
    metrics: MetricsCollector | None = None,
) -> APIRouter:
    """
    Create the router for health endpoints.

    Args:
        service: Service name reported by /health
        version: Application version string
        registry: Health check registry (uses global if None)
        metrics: Metrics collector (uses global if None)
    """
    router = APIRouter(tags=["health"])
    reg = registry or get_health_registry()
    met = metrics or get_metrics_collector()

    @router.get("/health", response_model=None)
    def health_check() -> JSONResponse:
        results = reg.run_all()
        overall = _overall(results)
        response = {
            "status": overall.value,
            "service": service,
            "version": version,
            "uptime_seconds": StartupTracker.get_uptime_seconds(),
            "checks": [
                {
                    "name": r.name,
                    "status": r.status.value,
                    "message": r.message,
                    "latency_ms": r.latency_ms,
                }
                for r in results
            ],
        }
        status_code = (
            status.HTTP_200_OK if overall == HealthStatus.HEALTHY else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(content=response, status_code=status_code)

    @router.get("/health/ready", response_model=None)
    def readiness_check() -> JSONResponse:
        results = reg.run_all()
        is_ready = all(r.status == HealthStatus.HEALTHY for r in results)
        response = {
            "ready": is_ready,
            "checks": [{"name": r.name, "status": r.status.value, "message": r.message} for r in results],
        }
        status_code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(content=response, status_code=status_code)

    @router.get("/health/live", response_model=None)
    def liveness_check() -> JSONResponse:
        return JSONResponse(
            content={"alive": True, "uptime_seconds": StartupTracker.get_uptime_seconds()},
            status_code=status.HTTP_200_OK,
        )

    @router.get("/metrics", response_model=None)
    def metrics_endpoint() -> JSONResponse:
        snapshot = met.get_snapshot()
        return JSONResponse(
            content={
                "request_count": snapshot.request_count,
                "error_count": snapshot.error_count,
                "rejected_count": snapshot.rejected_count,
                "avg_response_time_ms": snapshot.avg_response_time_ms,
                "uptime_seconds": snapshot.uptime_seconds,
            },
            status_code=status.HTTP_200_OK,
        )

    return router


def setup_default_health_checks(store: KVStorePort, registry: HealthCheckRegistry | None = None) -> None:
    """Register the startup and KV store checks. Call once during application startup."""
    reg = registry or get_health_registry()
    reg.clear()
    reg.register(StartupCheck())
    reg.register(KVStoreCheck(store))


def mark_startup_complete() -> None:
    StartupTracker.mark_started()
