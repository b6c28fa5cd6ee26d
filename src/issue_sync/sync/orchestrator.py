"""Fetch, transform, and concurrent upsert of source records with nested retries."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from issue_sync.config import MAX_SYNC_LIMIT, MIN_SYNC_LIMIT, Settings
from issue_sync.sources.base import SourceClient
from issue_sync.storage.base import DocumentStore
from issue_sync.sync import retry
from issue_sync.sync.correlation import correlation_context
from issue_sync.sync.errors import ConnectorError, ValidationError
from issue_sync.sync.failure_classifier import log_structured_error
from issue_sync.sync.metrics import MetricsSink
from issue_sync.sync.models import (
    Failure,
    ItemKind,
    ItemOutcome,
    PartialFailure,
    Success,
    SyncOutcome,
    TargetDocument,
)
from issue_sync.sync.transformer import RecordTransformer

logger = logging.getLogger(__name__)

ALL_FAILED_MESSAGE = "All sync operations failed"
DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_LIMIT = 5


def validate_sync_arguments(owner: str | None, repo: str | None, limit: int) -> None:
    """Reject caller mistakes before any collaborator is touched."""

    if owner is None or not owner.strip():
        raise ValueError("Owner cannot be null or blank")
    if repo is None or not repo.strip():
        raise ValueError("Repository name cannot be null or blank")
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValueError("Limit must be between 1 and 100")
    if not MIN_SYNC_LIMIT <= limit <= MAX_SYNC_LIMIT:
        raise ValueError(f"Limit must be between {MIN_SYNC_LIMIT} and {MAX_SYNC_LIMIT}")


class SyncOrchestrator:
    """Runs one sync: fetch, transform, fan out writes, and aggregate the outcome.

    The whole pipeline runs inside the pipeline retry policy, so a retry re-fetches and
    rewrites everything. That is sound only because ``DocumentStore.save`` is an upsert
    keyed by document id.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        source: SourceClient,
        store: DocumentStore,
        metrics: MetricsSink,
        source_policy: retry.RetryPolicy,
        store_policy: retry.RetryPolicy,
        pipeline_policy: retry.RetryPolicy,
        transformer: RecordTransformer | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        default_limit: int = DEFAULT_LIMIT,
        sleep: retry.Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_attempt: retry.AttemptListener | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.source = source
        self.store = store
        self.metrics = metrics
        self.source_policy = source_policy
        self.store_policy = store_policy
        self.pipeline_policy = pipeline_policy
        self.transformer = transformer or RecordTransformer()
        self.max_concurrency = max_concurrency
        self.default_limit = default_limit
        self._sleep = sleep
        self._clock = clock
        self._on_attempt = on_attempt

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        source: SourceClient,
        store: DocumentStore,
        metrics: MetricsSink,
        sleep: retry.Sleep = asyncio.sleep,
    ) -> SyncOrchestrator:
        return cls(
            source=source,
            store=store,
            metrics=metrics,
            source_policy=retry.source_fetch_policy(settings.source_retry),
            store_policy=retry.store_write_policy(settings.store_retry),
            pipeline_policy=retry.pipeline_policy(settings.pipeline_retry),
            max_concurrency=settings.sync.max_concurrency,
            default_limit=settings.sync.default_limit,
            sleep=sleep,
        )

    def sync(
        self,
        owner: str,
        repo: str,
        limit: int | None = None,
        *,
        correlation_id: str | None = None,
    ) -> Coroutine[Any, Any, SyncOutcome]:
        """Validate arguments immediately, then return the coroutine that runs the sync.

        Invalid arguments raise ``ValueError`` from this call itself, before anything is
        awaited. Every other failure resolves into the returned ``SyncOutcome``.
        """

        effective_limit = self.default_limit if limit is None else limit
        validate_sync_arguments(owner, repo, effective_limit)
        return self._sync((owner.strip(), repo.strip()), effective_limit, correlation_id)

    async def _sync(
        self,
        parts: tuple[str, ...],
        limit: int,
        correlation_id: str | None,
    ) -> SyncOutcome:
        with correlation_context(correlation_id):
            started = self._clock()
            target = "/".join(parts)
            logger.info("Starting sync for %s (limit=%d)", target, limit)
            try:
                outcome = await retry.execute(
                    lambda: self._run_pipeline(parts, limit, started),
                    self.pipeline_policy,
                    sleep=self._sleep,
                    on_attempt=self._on_attempt,
                )
            except ConnectorError as error:
                log_structured_error(error, operation=f"sync {target}")
                outcome = Failure(error=_failure_message(error), duration=self._elapsed(started))

            self._log_outcome(outcome, target)
            self._report(outcome)
            return outcome

    async def _run_pipeline(
        self,
        parts: tuple[str, ...],
        limit: int,
        started: float,
    ) -> SyncOutcome:
        records = await retry.execute(
            lambda: self.source.fetch_records(parts, limit),
            self.source_policy,
            sleep=self._sleep,
            on_attempt=self._on_attempt,
        )
        if not records:
            logger.info("No issues found for %s", "/".join(parts))
            return Success(processed_count=0, duration=self._elapsed(started))

        documents = self.transformer.transform_batch(records)
        if len(documents) < len(records):
            logger.warning(
                "Dropped %d of %d records that failed validation",
                len(records) - len(documents),
                len(records),
            )
        outcomes = await self._write_all(documents)
        return self._aggregate(outcomes, started)

    async def _write_all(self, documents: Sequence[TargetDocument]) -> list[ItemOutcome]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(document: TargetDocument) -> ItemOutcome:
            async with semaphore:
                return await self._write_one(document)

        # gather keeps input order regardless of completion order.
        return list(await asyncio.gather(*(_bounded(document) for document in documents)))

    async def _write_one(self, document: TargetDocument) -> ItemOutcome:
        try:
            existed = await retry.execute(
                lambda: self.store.exists(document.id),
                self.store_policy,
                sleep=self._sleep,
                on_attempt=self._on_attempt,
            )
            await retry.execute(
                lambda: self.store.save(document),
                self.store_policy,
                sleep=self._sleep,
                on_attempt=self._on_attempt,
            )
        except ConnectorError as error:
            message = f"Failed to process document {document.id}: {error}"
            logger.error(message)
            return ItemOutcome(
                document_id=document.id,
                succeeded=False,
                kind=ItemKind.FAILED,
                error_message=message,
            )

        kind = ItemKind.UPDATED if existed else ItemKind.CREATED
        logger.debug("Document %s %s", document.id, kind.value)
        return ItemOutcome(document_id=document.id, succeeded=True, kind=kind)

    def _aggregate(self, outcomes: Sequence[ItemOutcome], started: float) -> SyncOutcome:
        succeeded = [outcome for outcome in outcomes if outcome.succeeded]
        failed = [outcome for outcome in outcomes if not outcome.succeeded]
        duration = self._elapsed(started)
        created = sum(1 for outcome in succeeded if outcome.kind == ItemKind.CREATED)
        logger.info(
            "Write fan-in: created=%d updated=%d failed=%d",
            created,
            len(succeeded) - created,
            len(failed),
        )

        if not failed:
            return Success(processed_count=len(succeeded), duration=duration)
        if not succeeded:
            return Failure(error=ALL_FAILED_MESSAGE, duration=duration)
        return PartialFailure(
            processed_count=len(succeeded),
            failed_count=len(failed),
            errors=tuple(
                outcome.error_message or f"Failed to process document {outcome.document_id}"
                for outcome in failed
            ),
            duration=duration,
        )

    def _report(self, outcome: SyncOutcome) -> None:
        try:
            match outcome:
                case Success(processed_count=processed, duration=duration):
                    self.metrics.record_success(processed, duration)
                case PartialFailure(
                    processed_count=processed,
                    failed_count=failed,
                    duration=duration,
                ):
                    self.metrics.record_partial(processed, failed, duration)
                case Failure(error=error, duration=duration):
                    self.metrics.record_failure(error, duration)
        except Exception:
            logger.exception("Metrics sink failed to record sync outcome")

    def _log_outcome(self, outcome: SyncOutcome, target: str) -> None:
        match outcome:
            case Success(processed_count=processed, duration=duration):
                logger.info(
                    "SYNC_SUCCESS target=%s processed=%d duration=%.3fs",
                    target,
                    processed,
                    duration,
                )
            case PartialFailure() as partial:
                logger.warning(
                    "SYNC_PARTIAL_FAILURE target=%s processed=%d failed=%d "
                    "success_rate=%.2f duration=%.3fs",
                    target,
                    partial.processed_count,
                    partial.failed_count,
                    partial.success_rate,
                    partial.duration,
                )
            case Failure(error=error, duration=duration):
                logger.error(
                    "SYNC_COMPLETE_FAILURE target=%s error=%s duration=%.3fs",
                    target,
                    error,
                    duration,
                )

    def _elapsed(self, started: float) -> float:
        return max(0.0, self._clock() - started)


def _failure_message(error: ConnectorError) -> str:
    if isinstance(error, ValidationError):
        return f"Failed to transform issues: {error}"
    return f"Sync operation failed: {error}"
