"""Bounded, time-expiring cache for document existence checks."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from issue_sync.storage.base import DocumentStore, ReadableDocumentStore
from issue_sync.sync.models import TargetDocument

DEFAULT_MAX_ENTRIES = 2_000
DEFAULT_TTL_SECONDS = 1_800.0


@dataclass(slots=True)
class CacheStats:
    """Counters for cache effectiveness."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class ExistenceCache:
    """LRU map of document id to existence flag with per-entry expiry."""

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[bool, float]] = OrderedDict()
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, document_id: str) -> bool | None:
        """Cached flag, or None when absent or expired."""

        with self._lock:
            entry = self._entries.get(document_id)
            if entry is None:
                self.stats.misses += 1
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[document_id]
                self.stats.expirations += 1
                self.stats.misses += 1
                return None
            self._entries.move_to_end(document_id)
            self.stats.hits += 1
            return value

    def put(self, document_id: str, exists: bool) -> None:
        with self._lock:
            self._entries[document_id] = (exists, self._clock() + self.ttl_seconds)
            self._entries.move_to_end(document_id)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.stats.evictions += 1

    def invalidate(self, document_id: str) -> None:
        with self._lock:
            self._entries.pop(document_id, None)

    def invalidate_many(self, document_ids: Iterable[str]) -> None:
        with self._lock:
            for document_id in document_ids:
                self._entries.pop(document_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class CachedDocumentStore:
    """Document store wrapper that answers existence checks from an ``ExistenceCache``."""

    def __init__(self, store: DocumentStore, cache: ExistenceCache) -> None:
        self.store = store
        self.cache = cache

    async def exists(self, document_id: str) -> bool:
        cached = self.cache.get(document_id)
        if cached is not None:
            return cached
        exists = await self.store.exists(document_id)
        self.cache.put(document_id, exists)
        return exists

    async def save(self, document: TargetDocument) -> None:
        await self.store.save(document)
        self.cache.invalidate(document.id)

    async def save_batch(self, documents: Sequence[TargetDocument]) -> None:
        await self.store.save_batch(documents)
        self.cache.invalidate_many(document.id for document in documents)

    async def find_by_id(self, document_id: str) -> TargetDocument | None:
        if not isinstance(self.store, ReadableDocumentStore):
            raise TypeError(f"{type(self.store).__name__} does not support find_by_id")
        return await self.store.find_by_id(document_id)
