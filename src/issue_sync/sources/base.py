"""Common source client contracts."""

from __future__ import annotations

from typing import Protocol

from issue_sync.sync.models import SourceRecord


class SourceClient(Protocol):
    """Interface for issue sources."""

    name: str

    async def fetch_records(self, parts: tuple[str, ...], limit: int) -> list[SourceRecord]:
        """Fetch up to ``limit`` records for the source identified by ``parts``."""
        raise NotImplementedError
