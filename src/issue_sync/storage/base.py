"""Document store contracts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from issue_sync.sync.models import TargetDocument


class DocumentStore(Protocol):
    """Interface for the document store the sync engine writes to."""

    async def exists(self, document_id: str) -> bool:
        """Whether a document with this id is already stored."""
        raise NotImplementedError

    async def save(self, document: TargetDocument) -> None:
        """Upsert one document keyed by its id."""
        raise NotImplementedError

    async def save_batch(self, documents: Sequence[TargetDocument]) -> None:
        """Upsert several documents in one commit."""
        raise NotImplementedError


@runtime_checkable
class ReadableDocumentStore(Protocol):
    """Optional lookup hook for stores that can return stored documents."""

    async def find_by_id(self, document_id: str) -> TargetDocument | None:
        """Stored document or None."""
        raise NotImplementedError
