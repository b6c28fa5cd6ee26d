"""SQLModel ORM tables for document storage and run accounting."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel

DEFAULT_COLLECTION = "issues"


class IssueDocumentRow(SQLModel, table=True):
    __tablename__ = "issue_documents"  # type: ignore[bad-override]

    collection: str = Field(default=DEFAULT_COLLECTION, primary_key=True)
    document_id: str = Field(primary_key=True)
    title: str
    state: str = Field(index=True)
    url: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    synced_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SyncRun(SQLModel, table=True):
    __tablename__ = "sync_runs"  # type: ignore[bad-override]

    run_id: str = Field(primary_key=True)
    owner: str = Field(index=True)
    repo: str = Field(index=True)
    state: str = Field(index=True)
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    processed_count: int = 0
    failed_count: int = 0
    duration_seconds: float | None = None
    error_summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
