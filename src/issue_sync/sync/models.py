"""Domain models for fetch, transform, and sync outcome aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ItemKind(str, Enum):
    """Per-document write result."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


class SyncState(str, Enum):
    """Lifecycle states for sync runs."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SourceRecord:
    """Issue payload as returned by the source API, not yet validated."""

    id: int | None
    title: str | None
    state: str | None
    url: str | None
    created_at: datetime | None

    def __post_init__(self) -> None:
        if isinstance(self.state, str):
            object.__setattr__(self, "state", self.state.lower())


@dataclass(slots=True, frozen=True)
class TargetDocument:
    """Validated, normalized document ready for the store."""

    id: str
    title: str
    state: str
    url: str
    created_at: datetime
    synced_at: datetime


@dataclass(slots=True, frozen=True)
class ItemOutcome:
    """Result of one document's existence check and upsert."""

    document_id: str
    succeeded: bool
    kind: ItemKind
    error_message: str | None = None


@dataclass(slots=True, frozen=True)
class Success:
    """Every fetched document was written."""

    processed_count: int
    duration: float

    def __post_init__(self) -> None:
        if self.processed_count < 0:
            raise ValueError("processed_count must be >= 0")
        if self.duration < 0:
            raise ValueError("duration must be >= 0")


@dataclass(slots=True, frozen=True)
class PartialFailure:
    """Some documents were written, some failed."""

    processed_count: int
    failed_count: int
    errors: tuple[str, ...]
    duration: float

    def __post_init__(self) -> None:
        if self.processed_count < 0:
            raise ValueError("processed_count must be >= 0")
        if self.failed_count <= 0:
            raise ValueError("failed_count must be > 0; use Success when nothing failed")
        if not self.errors:
            raise ValueError("errors cannot be empty for a partial failure")
        if self.duration < 0:
            raise ValueError("duration must be >= 0")

    @property
    def total_attempted(self) -> int:
        return self.processed_count + self.failed_count

    @property
    def success_rate(self) -> float:
        return self.processed_count / self.total_attempted


@dataclass(slots=True, frozen=True)
class Failure:
    """The run produced no usable result."""

    error: str
    duration: float

    def __post_init__(self) -> None:
        if not self.error.strip():
            raise ValueError("error cannot be blank")
        if self.duration < 0:
            raise ValueError("duration must be >= 0")


SyncOutcome = Success | PartialFailure | Failure


def outcome_state(outcome: SyncOutcome) -> SyncState:
    """Map an outcome to the run lifecycle state it finishes with."""

    match outcome:
        case Success():
            return SyncState.SUCCESS
        case PartialFailure():
            return SyncState.PARTIAL_FAILURE
        case Failure():
            return SyncState.FAILED


def describe_outcome(outcome: SyncOutcome) -> str:
    """One-line human summary of an outcome."""

    match outcome:
        case Success(processed_count=processed, duration=duration):
            return f"Sync succeeded: processed={processed} duration={duration:.3f}s"
        case PartialFailure() as partial:
            return (
                "Sync partially failed: "
                f"processed={partial.processed_count} failed={partial.failed_count} "
                f"success_rate={partial.success_rate:.2%} duration={partial.duration:.3f}s"
            )
        case Failure(error=error, duration=duration):
            return f"Sync failed: {error} duration={duration:.3f}s"


@dataclass(slots=True)
class SyncRunView:
    """Persisted sync run accounting row."""

    run_id: str
    owner: str
    repo: str
    state: SyncState
    started_at: datetime
    finished_at: datetime | None
    processed_count: int
    failed_count: int
    duration_seconds: float | None
    error_summary: str | None
