"""Keeps the document projection in step with the API and the realtime channel."""

from __future__ import annotations

from typing import List, Sequence

from zettelsync.api.client import ApiGateway, UploadSource
from zettelsync.api.schemas import ApiResult, Document
from zettelsync.cache.projection import DocumentCache
from zettelsync.metrics.observability import get_logger
from zettelsync.models import JobProgress, JobStatus
from zettelsync.realtime.bus import EventBus
from zettelsync.realtime.events import (
    DocumentCreatedPayload,
    DocumentDeletedPayload,
    DocumentsUpdatedPayload,
    EventType,
)
from zettelsync.services.jobs import JobTracker


class DocumentSync:
    """Feeds one ``DocumentCache`` from two sources.

    Authoritative refreshes come from ``ApiGateway.list_documents`` (on mount
    when the snapshot is stale, after deletes, after a job completes); pushed
    document events are applied incrementally as they arrive.
    """

    def __init__(
        self,
        cache: DocumentCache,
        gateway: ApiGateway,
        bus: EventBus,
        *,
        jobs: JobTracker | None = None,
    ) -> None:
        self._cache = cache
        self._gateway = gateway
        self._bus = bus
        self._jobs = jobs or JobTracker(on_finished=self._on_job_finished)
        self._attached = False
        self._logger = get_logger("sync")

    @property
    def cache(self) -> DocumentCache:
        return self._cache

    @property
    def jobs(self) -> JobTracker:
        return self._jobs

    @property
    def documents(self) -> tuple[Document, ...]:
        return self._cache.documents

    def attach(self) -> None:
        if self._attached:
            return
        self._bus.on(EventType.DOCUMENT_CREATED, self._on_document_created)
        self._bus.on(EventType.DOCUMENT_DELETED, self._on_document_deleted)
        self._bus.on(EventType.DOCUMENTS_UPDATED, self._on_documents_updated)
        self._jobs.attach(self._bus)
        self._attached = True

    def detach(self) -> None:
        """Deregister every handler; requests already in flight still complete."""

        self._bus.off(EventType.DOCUMENT_CREATED, self._on_document_created)
        self._bus.off(EventType.DOCUMENT_DELETED, self._on_document_deleted)
        self._bus.off(EventType.DOCUMENTS_UPDATED, self._on_documents_updated)
        self._jobs.detach(self._bus)
        self._attached = False

    async def mount(self) -> bool:
        """Load the persisted snapshot and refresh it when stale; return whether a refresh ran."""

        if not self._cache.loaded:
            self._cache.load()
        self.attach()
        if self._cache.is_stale():
            await self.refresh()
            return True
        return False

    async def ensure_documents(self) -> bool:
        """Refresh when the projection is empty, e.g. on opening the document view."""

        if self._cache.documents:
            return False
        await self.refresh()
        return True

    async def refresh(self) -> ApiResult[List[Document]]:
        result = await self._gateway.list_documents()
        if result.success:
            self._cache.replace(result.data)
            self._logger.info("sync.refreshed", document_count=len(result.data))
        else:
            self._logger.warning("sync.refresh_failed", detail=result.error.message)
        return result

    async def upload(self, files: Sequence[UploadSource], source_type: str) -> ApiResult[str]:
        result = await self._gateway.upload_documents(files, source_type)
        if result.success and result.data:
            self._jobs.track(result.data)
        return result

    async def delete(self, document_id: str) -> ApiResult[None]:
        result = await self._gateway.delete_document(document_id)
        if result.success:
            self._cache.apply_deleted(document_id)
            await self.refresh()
        return result

    def _on_document_created(self, payload: DocumentCreatedPayload) -> None:
        self._cache.apply_created(payload.document)

    def _on_document_deleted(self, payload: DocumentDeletedPayload) -> None:
        self._cache.apply_deleted(payload.document_id)

    def _on_documents_updated(self, payload: DocumentsUpdatedPayload) -> None:
        self._cache.apply_bulk_update(payload.documents)

    async def _on_job_finished(self, job: JobProgress) -> None:
        if job.status is JobStatus.COMPLETED:
            await self.refresh()
