"""Sync outcome metrics and health evaluation."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from issue_sync.config import HealthSettings
from issue_sync.storage.common import utc_now
from issue_sync.sync.models import SyncRunView, SyncState


class MetricsSink(Protocol):
    """Receives one report per sync invocation."""

    def record_success(self, processed_count: int, duration: float) -> None:
        raise NotImplementedError

    def record_failure(self, error: str, duration: float) -> None:
        raise NotImplementedError

    def record_partial(self, processed_count: int, failed_count: int, duration: float) -> None:
        raise NotImplementedError


class HealthStatus(str, Enum):
    """Overall sync health."""

    UP = "up"
    DOWN = "down"


@dataclass(slots=True)
class SyncMetricsSnapshot:
    """Point-in-time sync counters."""

    total_syncs: int = 0
    successful_syncs: int = 0
    partial_syncs: int = 0
    failed_syncs: int = 0
    consecutive_failures: int = 0
    processed_total: int = 0
    failed_items_total: int = 0
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None
    last_duration_seconds: float | None = None

    @property
    def success_rate(self) -> float | None:
        """Share of syncs that wrote at least part of their batch."""

        if self.total_syncs == 0:
            return None
        return (self.successful_syncs + self.partial_syncs) / self.total_syncs


@dataclass(slots=True)
class HealthReport:
    """Health verdict with supporting details."""

    status: HealthStatus
    reason: str
    details: dict[str, object] = field(default_factory=dict)


class InMemorySyncMetrics:
    """Process-local metrics sink. A partial sync counts as a success for health purposes."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = SyncMetricsSnapshot()

    def record_success(self, processed_count: int, duration: float) -> None:
        with self._lock:
            snapshot = self._snapshot
            snapshot.total_syncs += 1
            snapshot.successful_syncs += 1
            snapshot.consecutive_failures = 0
            snapshot.processed_total += processed_count
            snapshot.last_success_at = self._clock()
            snapshot.last_duration_seconds = duration

    def record_partial(self, processed_count: int, failed_count: int, duration: float) -> None:
        with self._lock:
            snapshot = self._snapshot
            snapshot.total_syncs += 1
            snapshot.partial_syncs += 1
            snapshot.consecutive_failures = 0
            snapshot.processed_total += processed_count
            snapshot.failed_items_total += failed_count
            snapshot.last_success_at = self._clock()
            snapshot.last_duration_seconds = duration

    def record_failure(self, error: str, duration: float) -> None:
        with self._lock:
            snapshot = self._snapshot
            snapshot.total_syncs += 1
            snapshot.failed_syncs += 1
            snapshot.consecutive_failures += 1
            snapshot.last_failure_at = self._clock()
            snapshot.last_error = error
            snapshot.last_duration_seconds = duration

    def snapshot(self) -> SyncMetricsSnapshot:
        with self._lock:
            return replace(self._snapshot)


def snapshot_from_runs(runs: Sequence[SyncRunView]) -> SyncMetricsSnapshot:
    """Rebuild counters from persisted runs (any order); unfinished runs are ignored."""

    snapshot = SyncMetricsSnapshot()
    for run in sorted(runs, key=lambda item: item.started_at):
        finished_at = run.finished_at or run.started_at
        if run.state == SyncState.SUCCESS:
            snapshot.successful_syncs += 1
        elif run.state == SyncState.PARTIAL_FAILURE:
            snapshot.partial_syncs += 1
        elif run.state == SyncState.FAILED:
            snapshot.failed_syncs += 1
        else:
            continue

        snapshot.total_syncs += 1
        snapshot.last_duration_seconds = run.duration_seconds
        if run.state == SyncState.FAILED:
            snapshot.consecutive_failures += 1
            snapshot.last_failure_at = finished_at
            snapshot.last_error = run.error_summary
            continue
        snapshot.consecutive_failures = 0
        snapshot.processed_total += run.processed_count
        snapshot.failed_items_total += run.failed_count
        snapshot.last_success_at = finished_at
    return snapshot


def evaluate_health(
    snapshot: SyncMetricsSnapshot,
    *,
    now: datetime | None = None,
    settings: HealthSettings | None = None,
) -> HealthReport:
    """DOWN on repeated failures, no success yet, or a stale last success."""

    settings = settings or HealthSettings()
    now = now or utc_now()
    details: dict[str, object] = {
        "total_syncs": snapshot.total_syncs,
        "total_failures": snapshot.failed_syncs,
        "consecutive_failures": snapshot.consecutive_failures,
        "success_rate": format_success_rate(snapshot.success_rate),
        "last_success_at": (
            snapshot.last_success_at.isoformat() if snapshot.last_success_at else "never"
        ),
    }
    if snapshot.last_error:
        details["last_error"] = snapshot.last_error

    if snapshot.consecutive_failures >= settings.max_consecutive_failures:
        return HealthReport(
            status=HealthStatus.DOWN,
            reason=f"Too many consecutive failures: {snapshot.consecutive_failures}",
            details=details,
        )
    if snapshot.last_success_at is None:
        return HealthReport(
            status=HealthStatus.DOWN,
            reason="No successful sync recorded",
            details=details,
        )
    age = now - snapshot.last_success_at
    if age > timedelta(seconds=settings.max_success_age_seconds):
        return HealthReport(
            status=HealthStatus.DOWN,
            reason=f"Last successful sync is stale: {int(age.total_seconds())}s ago",
            details=details,
        )
    return HealthReport(status=HealthStatus.UP, reason="Sync is healthy", details=details)


def format_success_rate(rate: float | None) -> str:
    if rate is None:
        return "N/A"
    return f"{rate * 100:.2f}%"
