from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from issue_sync.config import HealthSettings
from issue_sync.sync.metrics import (
    HealthStatus,
    InMemorySyncMetrics,
    SyncMetricsSnapshot,
    evaluate_health,
    format_success_rate,
    snapshot_from_runs,
)
from issue_sync.sync.models import SyncRunView, SyncState

pytestmark = [
    allure.epic("Observability"),
    allure.feature("Sync Metrics & Health"),
]

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _run(
    minutes_ago: int,
    state: SyncState,
    *,
    processed: int = 0,
    failed: int = 0,
    error: str | None = None,
) -> SyncRunView:
    started = NOW - timedelta(minutes=minutes_ago)
    return SyncRunView(
        run_id=f"run-{minutes_ago}",
        owner="acme",
        repo="widgets",
        state=state,
        started_at=started,
        finished_at=None if state == SyncState.IN_PROGRESS else started + timedelta(seconds=5),
        processed_count=processed,
        failed_count=failed,
        duration_seconds=None if state == SyncState.IN_PROGRESS else 5.0,
        error_summary=error,
    )


def test_in_memory_metrics_counts_outcomes() -> None:
    metrics = InMemorySyncMetrics(clock=lambda: NOW)

    metrics.record_success(3, 0.5)
    metrics.record_partial(2, 1, 0.7)
    metrics.record_failure("All sync operations failed", 0.9)
    metrics.record_failure("Sync operation failed: boom", 1.1)

    snapshot = metrics.snapshot()
    assert snapshot.total_syncs == 4
    assert snapshot.successful_syncs == 1
    assert snapshot.partial_syncs == 1
    assert snapshot.failed_syncs == 2
    assert snapshot.consecutive_failures == 2
    assert snapshot.processed_total == 5
    assert snapshot.failed_items_total == 1
    assert snapshot.last_success_at == NOW
    assert snapshot.last_error == "Sync operation failed: boom"
    assert snapshot.last_duration_seconds == 1.1
    assert snapshot.success_rate == pytest.approx(0.5)


def test_partial_sync_resets_consecutive_failures() -> None:
    metrics = InMemorySyncMetrics(clock=lambda: NOW)
    metrics.record_failure("x", 0.1)
    metrics.record_partial(1, 1, 0.1)

    assert metrics.snapshot().consecutive_failures == 0


def test_snapshot_is_a_copy() -> None:
    metrics = InMemorySyncMetrics(clock=lambda: NOW)
    snapshot = metrics.snapshot()

    metrics.record_success(1, 0.1)

    assert snapshot.total_syncs == 0
    assert metrics.snapshot().total_syncs == 1


def test_health_is_down_without_any_success() -> None:
    report = evaluate_health(SyncMetricsSnapshot(), now=NOW)

    assert report.status == HealthStatus.DOWN
    assert report.reason == "No successful sync recorded"
    assert report.details["success_rate"] == "N/A"
    assert report.details["last_success_at"] == "never"


def test_health_is_up_after_recent_success() -> None:
    snapshot = SyncMetricsSnapshot(total_syncs=1, successful_syncs=1, last_success_at=NOW)

    report = evaluate_health(snapshot, now=NOW + timedelta(minutes=10))

    assert report.status == HealthStatus.UP
    assert report.reason == "Sync is healthy"
    assert report.details["success_rate"] == "100.00%"


def test_health_is_down_after_consecutive_failures() -> None:
    snapshot = SyncMetricsSnapshot(
        total_syncs=6,
        successful_syncs=1,
        failed_syncs=5,
        consecutive_failures=5,
        last_success_at=NOW,
        last_error="Sync operation failed: boom",
    )

    report = evaluate_health(snapshot, now=NOW)

    assert report.status == HealthStatus.DOWN
    assert report.reason == "Too many consecutive failures: 5"
    assert report.details["last_error"] == "Sync operation failed: boom"


def test_health_is_down_when_last_success_is_stale() -> None:
    snapshot = SyncMetricsSnapshot(total_syncs=1, successful_syncs=1, last_success_at=NOW)

    report = evaluate_health(snapshot, now=NOW + timedelta(hours=2))

    assert report.status == HealthStatus.DOWN
    assert report.reason == "Last successful sync is stale: 7200s ago"


def test_health_thresholds_are_configurable() -> None:
    snapshot = SyncMetricsSnapshot(
        total_syncs=3,
        successful_syncs=1,
        failed_syncs=2,
        consecutive_failures=2,
        last_success_at=NOW,
    )

    report = evaluate_health(
        snapshot,
        now=NOW,
        settings=HealthSettings(max_consecutive_failures=2, max_success_age_seconds=60),
    )

    assert report.status == HealthStatus.DOWN
    assert report.reason == "Too many consecutive failures: 2"


def test_snapshot_from_runs_replays_in_start_order() -> None:
    runs = [
        _run(1, SyncState.FAILED, error="All sync operations failed"),
        _run(30, SyncState.SUCCESS, processed=3),
        _run(0, SyncState.IN_PROGRESS),
        _run(20, SyncState.PARTIAL_FAILURE, processed=2, failed=1),
        _run(10, SyncState.FAILED, error="Sync operation failed: boom"),
    ]

    snapshot = snapshot_from_runs(runs)

    assert snapshot.total_syncs == 4
    assert snapshot.successful_syncs == 1
    assert snapshot.partial_syncs == 1
    assert snapshot.failed_syncs == 2
    assert snapshot.consecutive_failures == 2
    assert snapshot.processed_total == 5
    assert snapshot.failed_items_total == 1
    assert snapshot.last_error == "All sync operations failed"
    assert snapshot.last_success_at == NOW - timedelta(minutes=20) + timedelta(seconds=5)


def test_snapshot_from_no_runs_is_empty() -> None:
    snapshot = snapshot_from_runs([])

    assert snapshot.total_syncs == 0
    assert snapshot.success_rate is None


@pytest.mark.parametrize(
    ("rate", "expected"),
    [(None, "N/A"), (0.0, "0.00%"), (2 / 3, "66.67%"), (1.0, "100.00%")],
)
def test_format_success_rate(rate: float | None, expected: str) -> None:
    assert format_success_rate(rate) == expected
