"""SQLModel-backed document store and sync run accounting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from issue_sync.storage.alembic_runner import upgrade_head
from issue_sync.storage.common import build_sqlite_engine, ensure_utc, utc_now
from issue_sync.storage.sqlmodel_models import DEFAULT_COLLECTION, IssueDocumentRow, SyncRun
from issue_sync.sync.failure_classifier import classify_store_failure
from issue_sync.sync.models import (
    Failure,
    PartialFailure,
    Success,
    SyncOutcome,
    SyncRunView,
    SyncState,
    TargetDocument,
    outcome_state,
)

logger = logging.getLogger(__name__)
T = TypeVar("T")


class SQLiteDocumentStore:
    """Facade that persists issue documents and sync runs using SQLModel and Alembic."""

    def __init__(
        self,
        db_path: Path,
        *,
        collection: str = DEFAULT_COLLECTION,
        busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.collection = collection
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    async def exists(self, document_id: str) -> bool:
        return await self._run(self._exists, document_id)

    async def save(self, document: TargetDocument) -> None:
        await self._run(self._upsert, [document])

    async def save_batch(self, documents: Sequence[TargetDocument]) -> None:
        if not documents:
            return
        await self._run(self._upsert, list(documents))

    async def find_by_id(self, document_id: str) -> TargetDocument | None:
        return await self._run(self._find_by_id, document_id)

    def count_documents(self) -> int:
        with Session(self.engine) as session:
            rows = session.exec(
                select(IssueDocumentRow.document_id).where(
                    IssueDocumentRow.collection == self.collection,
                ),
            ).all()
            return len(rows)

    def start_run(self, *, owner: str, repo: str, run_id: str | None = None) -> str:
        run_id = run_id or str(uuid4())
        with Session(self.engine) as session:
            session.add(
                SyncRun(
                    run_id=run_id,
                    owner=owner,
                    repo=repo,
                    state=SyncState.IN_PROGRESS.value,
                    started_at=utc_now(),
                ),
            )
            session.commit()
        return run_id

    def finish_run(self, *, run_id: str, outcome: SyncOutcome) -> None:
        processed, failed, error_summary = _run_counters(outcome)
        with Session(self.engine) as session:
            run = session.get(SyncRun, run_id)
            if run is None:
                raise ValueError(f"Sync run not found: {run_id}")
            run.state = outcome_state(outcome).value
            run.finished_at = utc_now()
            run.processed_count = processed
            run.failed_count = failed
            run.duration_seconds = outcome.duration
            run.error_summary = error_summary
            session.add(run)
            session.commit()

    def fail_run(self, *, run_id: str, error_summary: str) -> None:
        """Close a run that ended with an unexpected exception instead of an outcome."""

        with Session(self.engine) as session:
            run = session.get(SyncRun, run_id)
            if run is None:
                raise ValueError(f"Sync run not found: {run_id}")
            run.state = SyncState.FAILED.value
            run.finished_at = utc_now()
            run.error_summary = error_summary
            session.add(run)
            session.commit()

    def list_recent_runs(self, *, limit: int = 5) -> list[SyncRunView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(SyncRun).order_by(col(SyncRun.started_at).desc()).limit(limit),
            ).all()
            return [_to_run_view(row) for row in rows]

    async def _run(self, operation: Callable[..., T], *args: object) -> T:
        try:
            return await asyncio.to_thread(operation, *args)
        except (SQLAlchemyError, OSError) as error:
            raise classify_store_failure(error) from error

    def _exists(self, document_id: str) -> bool:
        with Session(self.engine) as session:
            return session.get(IssueDocumentRow, (self.collection, document_id)) is not None

    def _find_by_id(self, document_id: str) -> TargetDocument | None:
        with Session(self.engine) as session:
            row = session.get(IssueDocumentRow, (self.collection, document_id))
            if row is None:
                return None
            return _to_document(row)

    def _upsert(self, documents: list[TargetDocument]) -> None:
        with Session(self.engine) as session:
            for document in documents:
                self._stage_upsert(session, document)
            try:
                session.commit()
            except IntegrityError:
                # A concurrent writer inserted one of the ids first; replay as updates.
                session.rollback()
                for document in documents:
                    self._stage_upsert(session, document)
                session.commit()
        logger.debug("Upserted %d documents into %s", len(documents), self.collection)

    def _stage_upsert(self, session: Session, document: TargetDocument) -> None:
        row = session.get(IssueDocumentRow, (self.collection, document.id))
        if row is None:
            row = IssueDocumentRow(collection=self.collection, document_id=document.id)
        row.title = document.title
        row.state = document.state
        row.url = document.url
        row.created_at = document.created_at
        row.synced_at = document.synced_at
        session.add(row)


def _to_document(row: IssueDocumentRow) -> TargetDocument:
    return TargetDocument(
        id=row.document_id,
        title=row.title,
        state=row.state,
        url=row.url,
        created_at=ensure_utc(row.created_at),
        synced_at=ensure_utc(row.synced_at),
    )


def _to_run_view(row: SyncRun) -> SyncRunView:
    return SyncRunView(
        run_id=row.run_id,
        owner=row.owner,
        repo=row.repo,
        state=SyncState(row.state),
        started_at=ensure_utc(row.started_at),
        finished_at=ensure_utc(row.finished_at) if row.finished_at else None,
        processed_count=row.processed_count,
        failed_count=row.failed_count,
        duration_seconds=row.duration_seconds,
        error_summary=row.error_summary,
    )


def _run_counters(outcome: SyncOutcome) -> tuple[int, int, str | None]:
    match outcome:
        case Success(processed_count=processed):
            return processed, 0, None
        case PartialFailure(processed_count=processed, failed_count=failed, errors=errors):
            return processed, failed, "\n".join(errors)
        case Failure(error=error):
            return 0, 0, error
