"""One accounted sync run: wires collaborators, persists the run row, returns the outcome."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import uuid4

from issue_sync.config import Settings
from issue_sync.sources.base import SourceClient
from issue_sync.storage.base import DocumentStore
from issue_sync.storage.cache import CachedDocumentStore, ExistenceCache
from issue_sync.storage.repository import SQLiteDocumentStore
from issue_sync.sync import retry
from issue_sync.sync.metrics import InMemorySyncMetrics, MetricsSink
from issue_sync.sync.models import SyncOutcome
from issue_sync.sync.orchestrator import SyncOrchestrator


@dataclass(slots=True)
class SyncRunSummary:
    """Result of one accounted sync run."""

    run_id: str
    outcome: SyncOutcome


def build_document_store(settings: Settings, store: SQLiteDocumentStore) -> DocumentStore:
    """Put the existence cache in front of the store when caching is enabled."""

    if not settings.cache.enabled:
        return store
    return CachedDocumentStore(
        store,
        ExistenceCache(
            max_entries=settings.cache.max_entries,
            ttl_seconds=settings.cache.ttl_seconds,
        ),
    )


async def run_issue_sync(  # noqa: PLR0913
    *,
    settings: Settings,
    store: SQLiteDocumentStore,
    source: SourceClient,
    owner: str,
    repo: str,
    limit: int | None = None,
    metrics: MetricsSink | None = None,
    sleep: retry.Sleep = asyncio.sleep,
) -> SyncRunSummary:
    """Run one sync and record it in ``sync_runs``; the run id doubles as correlation id."""

    orchestrator = SyncOrchestrator.from_settings(
        settings,
        source=source,
        store=build_document_store(settings, store),
        metrics=metrics or InMemorySyncMetrics(),
        sleep=sleep,
    )
    run_id = str(uuid4())
    pending = orchestrator.sync(owner, repo, limit, correlation_id=run_id)
    try:
        await asyncio.to_thread(
            store.start_run,
            owner=owner.strip(),
            repo=repo.strip(),
            run_id=run_id,
        )
    except Exception:
        pending.close()
        raise

    try:
        outcome = await pending
    except Exception as exc:
        await asyncio.to_thread(store.fail_run, run_id=run_id, error_summary=str(exc))
        raise
    await asyncio.to_thread(store.finish_run, run_id=run_id, outcome=outcome)
    return SyncRunSummary(run_id=run_id, outcome=outcome)
