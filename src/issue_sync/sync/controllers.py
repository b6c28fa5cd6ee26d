"""Controllers for sync CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from issue_sync.config import Settings
from issue_sync.sources.github import GitHubSourceClient, GitHubSourceConfig
from issue_sync.storage.repository import SQLiteDocumentStore
from issue_sync.sync.errors import ConnectorError
from issue_sync.sync.failure_classifier import (
    classify_http_status,
    classify_store_failure,
    troubleshooting_hint,
)
from issue_sync.sync.metrics import evaluate_health, format_success_rate, snapshot_from_runs
from issue_sync.sync.models import Failure, PartialFailure, describe_outcome
from issue_sync.sync.orchestrator import ALL_FAILED_MESSAGE
from issue_sync.sync.runner import SyncRunSummary, run_issue_sync


@dataclass(slots=True)
class SyncRunCommand:
    """CLI inputs for sync run command."""

    db_path: Path | None
    owner: str
    repo: str
    limit: int | None


@dataclass(slots=True)
class SyncStatsCommand:
    """CLI inputs for stats command."""

    db_path: Path | None
    recent_runs: int


@dataclass(slots=True)
class ExplainErrorCommand:
    """CLI inputs for error explanation command."""

    status: int | None
    store_message: str | None


@dataclass(slots=True)
class SyncRunResult:
    """Sync report to render in CLI."""

    lines: list[str]
    success: bool


class SyncCliController:
    """Coordinates sync command execution."""

    def run(self, command: SyncRunCommand) -> SyncRunResult:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_sync()
        with _store(settings) as store:
            summary = asyncio.run(_run_with_github(settings, store, command))

        lines = [f"Sync run {summary.run_id}: {describe_outcome(summary.outcome)}"]
        match summary.outcome:
            case PartialFailure(errors=errors):
                lines.extend(f"  - {error}" for error in errors)
            case Failure() as failure:
                lines.append(f"Hint: {_failure_hint(failure)}")
        return SyncRunResult(lines=lines, success=not isinstance(summary.outcome, Failure))

    def stats(self, command: SyncStatsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            runs = store.list_recent_runs(limit=command.recent_runs)
            documents = store.count_documents()

        snapshot = snapshot_from_runs(runs)
        health = evaluate_health(snapshot, settings=settings.health)
        lines = [
            f"Sync health: {health.status.value.upper()} ({health.reason})",
            f"Stored documents: {documents}",
            "Recent runs: "
            f"total={snapshot.total_syncs} failures={snapshot.failed_syncs} "
            f"success_rate={format_success_rate(snapshot.success_rate)}",
        ]
        if not runs:
            lines.append("No sync runs recorded yet.")
        for run in runs:
            duration = f"{run.duration_seconds:.3f}s" if run.duration_seconds is not None else "-"
            lines.append(
                f"- {run.started_at.isoformat()} {run.owner}/{run.repo} "
                f"state={run.state.value} processed={run.processed_count} "
                f"failed={run.failed_count} duration={duration}",
            )
        return lines

    def explain(self, command: ExplainErrorCommand) -> list[str]:
        if (command.status is None) == (command.store_message is None):
            raise ValueError("Pass exactly one of --status or --store-message.")
        error: ConnectorError
        if command.status is not None:
            error = classify_http_status(command.status, context="<resource>")
        else:
            error = classify_store_failure(RuntimeError(command.store_message or ""))
        return [
            f"Code: {error.code}",
            f"Message: {error.message}",
            f"Retryable: {'yes' if error.retryable else 'no'}",
            f"Hint: {troubleshooting_hint(error)}",
        ]


async def _run_with_github(
    settings: Settings,
    store: SQLiteDocumentStore,
    command: SyncRunCommand,
) -> SyncRunSummary:
    async with GitHubSourceClient(GitHubSourceConfig.from_settings(settings.source)) as source:
        return await run_issue_sync(
            settings=settings,
            store=store,
            source=source,
            owner=command.owner,
            repo=command.repo,
            limit=command.limit,
        )


def _failure_hint(outcome: Failure) -> str:
    if outcome.error == ALL_FAILED_MESSAGE:
        return "Every document write failed; classify the store error with `errors explain`."
    return "Re-run with --verbose to see the classified error and retry attempts."


@contextmanager
def _store(settings: Settings) -> Iterator[SQLiteDocumentStore]:
    store = SQLiteDocumentStore(
        settings.db_path,
        collection=settings.store.collection_name,
        busy_timeout_ms=settings.store.busy_timeout_ms,
    )
    try:
        store.init_schema()
        yield store
    finally:
        store.close()
