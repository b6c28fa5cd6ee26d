from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from issue_sync.main import issue_sync
from issue_sync.sources.github import GitHubSourceClient
from issue_sync.sync.errors import SourceApiError
from issue_sync.sync.models import SourceRecord

pytestmark = [
    allure.epic("CLI"),
    allure.feature("issue-sync commands"),
]


def _records() -> list[SourceRecord]:
    return [
        SourceRecord(
            id=issue_id,
            title=f"Issue {issue_id}",
            state="open",
            url=f"https://github.com/acme/widgets/issues/{issue_id}",
            created_at=datetime(2024, 1, issue_id, tzinfo=UTC),
        )
        for issue_id in (1, 2)
    ]


@pytest.fixture()
def github_returns_issues(monkeypatch):
    calls: list[tuple[tuple[str, ...], int]] = []

    async def _fetch(self, parts, limit):
        calls.append((parts, limit))
        return _records()[:limit]

    monkeypatch.setattr(GitHubSourceClient, "fetch_records", _fetch)
    return calls


@pytest.fixture()
def github_repo_missing(monkeypatch):
    async def _fetch(self, parts, limit):
        raise SourceApiError.not_found("/".join(parts))

    monkeypatch.setattr(GitHubSourceClient, "fetch_records", _fetch)


def test_sync_run_then_stats(
    tmp_path: Path,
    github_returns_issues,
    instant_retries,
) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"

    result = runner.invoke(
        issue_sync,
        ["sync", "run", "--db-path", str(db_path), "--owner", "acme", "--repo", "widgets"],
    )

    assert result.exit_code == 0, result.output
    assert "Sync succeeded: processed=2" in result.output
    assert github_returns_issues == [(("acme", "widgets"), 5)]

    stats = runner.invoke(issue_sync, ["sync", "stats", "--db-path", str(db_path)])

    assert stats.exit_code == 0, stats.output
    assert "Sync health: UP (Sync is healthy)" in stats.output
    assert "Stored documents: 2" in stats.output
    assert "acme/widgets state=success processed=2 failed=0" in stats.output


def test_sync_run_failure_exits_non_zero(
    tmp_path: Path,
    github_repo_missing,
    instant_retries,
) -> None:
    result = CliRunner().invoke(
        issue_sync,
        [
            "sync",
            "run",
            "--db-path",
            str(tmp_path / "cli.db"),
            "--owner",
            "acme",
            "--repo",
            "missing",
            "--limit",
            "3",
        ],
    )

    assert result.exit_code == 1
    assert "Sync failed: Sync operation failed: Source resource not found: acme/missing" in (
        result.output
    )
    assert "Hint: Re-run with --verbose" in result.output


def test_sync_run_rejects_out_of_range_limit(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        issue_sync,
        [
            "sync",
            "run",
            "--db-path",
            str(tmp_path / "cli.db"),
            "--owner",
            "a",
            "--repo",
            "b",
            "--limit",
            "0",
        ],
    )

    assert result.exit_code == 2


def test_sync_run_reports_invalid_configuration(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("ISSUE_SYNC_SOURCE_API_URL", "not-a-url")

    result = CliRunner().invoke(
        issue_sync,
        ["sync", "run", "--db-path", str(tmp_path / "cli.db"), "--owner", "a", "--repo", "b"],
    )

    assert result.exit_code == 1
    assert "Invalid ISSUE_SYNC_SOURCE_API_URL" in result.output


def test_stats_on_fresh_database(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        issue_sync,
        ["sync", "stats", "--db-path", str(tmp_path / "fresh.db")],
    )

    assert result.exit_code == 0, result.output
    assert "Sync health: DOWN (No successful sync recorded)" in result.output
    assert "No sync runs recorded yet." in result.output
    assert "success_rate=N/A" in result.output


def test_errors_explain_status() -> None:
    result = CliRunner().invoke(issue_sync, ["errors", "explain", "--status", "429"])

    assert result.exit_code == 0, result.output
    assert "Code: SOURCE_RATE_LIMIT" in result.output
    assert "Retryable: yes" in result.output
    assert "Retry after 60 seconds" in result.output


def test_errors_explain_store_message() -> None:
    result = CliRunner().invoke(
        issue_sync,
        ["errors", "explain", "--store-message", "database is locked"],
    )

    assert result.exit_code == 0, result.output
    assert "Message: Store network error: database is locked" in result.output
    assert "Retryable: yes" in result.output


def test_errors_explain_requires_exactly_one_option() -> None:
    result = CliRunner().invoke(issue_sync, ["errors", "explain"])

    assert result.exit_code == 2
