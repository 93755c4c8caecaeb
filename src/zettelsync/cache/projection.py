"""Persisted client-side projection of the server's document collection."""

from __future__ import annotations

import time
from typing import Callable, List, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zettelsync.api.schemas import Document
from zettelsync.cache.storage import DOCUMENT_CACHE_KEY, KeyValueStorage
from zettelsync.metrics.observability import ClientMetrics, get_logger

DEFAULT_STALENESS_MS = 3_600_000

CacheListener = Callable[[Sequence[Document]], None]


class CacheRecord(BaseModel):
    """Wire shape of the persisted snapshot: `{documents, lastUpdated}`."""

    model_config = ConfigDict(populate_by_name=True)

    documents: List[Document] = Field(default_factory=list)
    last_updated: int = Field(..., alias="lastUpdated", description="Epoch milliseconds of the last write")


class DocumentCache:
    """In-memory document list mirrored to durable storage after every mutation.

    Two writers feed the cache: authoritative list fetches (``replace``) and
    pushed realtime events (``apply_*``). Mutations apply in call order and
    the last write wins; each one is persisted before control returns.
    """

    _logger = get_logger("cache")

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        key: str = DOCUMENT_CACHE_KEY,
        staleness_ms: int = DEFAULT_STALENESS_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._key = key
        self._staleness_ms = staleness_ms
        self._clock = clock
        self._documents: List[Document] = []
        self._loaded = False
        self._listeners: List[CacheListener] = []

    @property
    def documents(self) -> tuple[Document, ...]:
        return tuple(self._documents)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def ids(self) -> set[str]:
        return {document.id for document in self._documents}

    def get(self, document_id: str) -> Document | None:
        for document in self._documents:
            if document.id == document_id:
                return document
        return None

    def total_chunks(self) -> int:
        return sum(document.chunk_count for document in self._documents)

    def load(self) -> None:
        record = self._read_record()
        self._documents = list(record.documents) if record is not None else []
        self._loaded = True
        self._logger.info("cache.loaded", document_count=len(self._documents), found=record is not None)
        self._notify()

    def replace(self, documents: Sequence[Document]) -> None:
        self._commit(list(documents), mutation="replace")

    def apply_created(self, document: Document) -> None:
        if any(existing.id == document.id for existing in self._documents):
            # ids are unique; a re-announced document keeps its position
            updated = [document if existing.id == document.id else existing for existing in self._documents]
        else:
            updated = [*self._documents, document]
        self._commit(updated, mutation="created")

    def apply_deleted(self, document_id: str) -> None:
        updated = [existing for existing in self._documents if existing.id != document_id]
        self._commit(updated, mutation="deleted")

    def apply_bulk_update(self, documents: Sequence[Document]) -> None:
        self._commit(list(documents), mutation="bulk_update")

    def is_stale(self) -> bool:
        record = self._read_record()
        if record is None:
            return True
        return self._now_ms() - record.last_updated > self._staleness_ms

    def last_updated(self) -> int | None:
        record = self._read_record()
        return record.last_updated if record is not None else None

    def clear(self) -> None:
        self._storage.remove_item(self._key)
        self._documents = []
        ClientMetrics.cache_writes.labels(mutation="clear").inc()
        self._logger.info("cache.cleared")
        self._notify()

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, documents: List[Document], *, mutation: str) -> None:
        self._documents = documents
        record = CacheRecord(documents=documents, last_updated=self._now_ms())
        self._storage.set_item(self._key, record.model_dump_json(by_alias=True))
        ClientMetrics.cache_writes.labels(mutation=mutation).inc()
        self._notify()

    def _read_record(self) -> CacheRecord | None:
        raw = self._storage.get_item(self._key)
        if raw is None:
            return None
        try:
            return CacheRecord.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning("cache.corrupt", key=self._key, detail=str(exc))
            return None

    def _notify(self) -> None:
        snapshot = self.documents
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                self._logger.error("cache.listener_error", detail=str(exc))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)
