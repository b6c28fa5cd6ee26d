"""Validation and normalization of source records into store documents."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from issue_sync.storage.common import utc_now
from issue_sync.sync.errors import ValidationError
from issue_sync.sync.models import SourceRecord, TargetDocument

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 1000
TRUNCATION_MARKER = "..."
VALID_STATES = frozenset({"open", "closed"})


class RecordTransformer:
    """Converts source records into target documents."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock

    def transform(self, record: SourceRecord | None) -> TargetDocument:
        now = self.clock()
        validated = _validate(record, now=now)
        return TargetDocument(
            id=str(validated.id),
            title=_sanitize_title(validated.title or ""),
            state=(validated.state or "").strip().lower(),
            url=(validated.url or "").strip(),
            created_at=_as_utc(validated.created_at),
            synced_at=now,
        )

    def transform_batch(self, records: Sequence[SourceRecord | None]) -> list[TargetDocument]:
        """Transform every record independently, dropping the ones that fail validation.

        Raises ``ValidationError`` only when the input was non-empty and every record failed.
        """

        documents: list[TargetDocument] = []
        errors: list[str] = []
        for index, record in enumerate(records):
            try:
                documents.append(self.transform(record))
            except ValidationError as error:
                message = f"Failed to transform issue at index {index}: {error}"
                errors.append(message)
                logger.warning(message)

        if errors:
            summary = (
                f"Batch transformation completed with {len(errors)} errors "
                f"out of {len(records)} issues"
            )
            if not documents:
                raise ValidationError(
                    message=f"{summary}. All transformations failed.",
                    details={"errors": errors},
                )
            logger.warning(summary)
        return documents


def _validate(record: SourceRecord | None, *, now: datetime) -> SourceRecord:
    if record is None:
        raise ValidationError(message="Issue cannot be null")
    if record.id is None:
        raise ValidationError(message="Issue ID cannot be null")
    if record.id <= 0:
        raise ValidationError(message=f"Issue ID must be positive, got: {record.id}")
    if _is_blank(record.title):
        raise ValidationError(message="Issue title cannot be null or blank")
    if _is_blank(record.state):
        raise ValidationError(message="Issue state cannot be null or blank")
    if _is_blank(record.url):
        raise ValidationError(message="Issue URL cannot be null or blank")
    if record.created_at is None:
        raise ValidationError(message="Issue created date cannot be null")
    if _as_utc(record.created_at) > now:
        raise ValidationError(message="Issue created date cannot be in the future")

    url = (record.url or "").strip()
    if not url.startswith(("http://", "https://")):
        raise ValidationError(message="Issue URL must be a valid HTTP/HTTPS URL")
    state = (record.state or "").strip().lower()
    if state not in VALID_STATES:
        raise ValidationError(
            message=f"Invalid issue state: {record.state}. Must be 'open' or 'closed'",
        )
    return record


def _sanitize_title(title: str) -> str:
    trimmed = title.strip()
    if len(trimmed) > MAX_TITLE_LENGTH:
        return trimmed[: MAX_TITLE_LENGTH - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
    return trimmed


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        raise ValidationError(message="Issue created date cannot be null")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
