"""Tracking of upload jobs driven by realtime job events."""

from __future__ import annotations

import inspect
from dataclasses import replace
from typing import Awaitable, Callable, Dict, Optional, Union

from zettelsync.metrics.observability import get_logger
from zettelsync.models import JobProgress, JobStatus
from zettelsync.realtime.bus import EventBus
from zettelsync.realtime.events import EventType, JobCompletedPayload, JobFailedPayload, JobProgressPayload

JobFinishedCallback = Callable[[JobProgress], Union[None, Awaitable[None]]]


class JobTracker:
    """Keeps Job Progress Entries for jobs started by this client.

    Only jobs registered with ``track`` are updated; events for other job ids
    are ignored. Progress never moves backwards and nothing changes once a
    job reached a terminal state, so duplicated or reordered events are
    harmless. Finished jobs leave the active set but stay readable until
    ``dismiss``.
    """

    def __init__(self, on_finished: Optional[JobFinishedCallback] = None) -> None:
        self._jobs: Dict[str, JobProgress] = {}
        self._active: Dict[str, None] = {}
        self._on_finished = on_finished
        self._logger = get_logger("jobs")

    @property
    def active_job_ids(self) -> tuple[str, ...]:
        return tuple(self._active)

    @property
    def jobs(self) -> tuple[JobProgress, ...]:
        return tuple(self._jobs.values())

    def get(self, job_id: str) -> JobProgress | None:
        return self._jobs.get(job_id)

    def is_active(self, job_id: str) -> bool:
        return job_id in self._active

    def track(self, job_id: str) -> JobProgress:
        entry = self._jobs.get(job_id)
        if entry is None:
            entry = JobProgress(job_id=job_id)
            self._jobs[job_id] = entry
            self._active[job_id] = None
            self._logger.info("jobs.tracking", job_id=job_id)
        return entry

    def dismiss(self, job_id: str) -> None:
        if job_id not in self._active:
            self._jobs.pop(job_id, None)

    def attach(self, bus: EventBus) -> None:
        bus.on(EventType.JOB_PROGRESS, self.handle_progress)
        bus.on(EventType.JOB_COMPLETED, self.handle_completed)
        bus.on(EventType.JOB_FAILED, self.handle_failed)

    def detach(self, bus: EventBus) -> None:
        bus.off(EventType.JOB_PROGRESS, self.handle_progress)
        bus.off(EventType.JOB_COMPLETED, self.handle_completed)
        bus.off(EventType.JOB_FAILED, self.handle_failed)

    async def handle_progress(self, payload: JobProgressPayload) -> None:
        entry = self._active_entry(payload.job_id)
        if entry is None:
            return
        status = JobStatus(payload.status)
        if status is JobStatus.COMPLETED:
            await self._finish(replace(entry, status=status, progress=100))
            return
        if status is JobStatus.FAILED:
            await self._finish(replace(entry, status=status, progress=max(entry.progress, payload.progress)))
            return
        if payload.progress < entry.progress:
            self._logger.debug("jobs.stale_progress", job_id=entry.job_id, progress=payload.progress)
            return
        self._jobs[entry.job_id] = replace(entry, progress=payload.progress)

    async def handle_completed(self, payload: JobCompletedPayload) -> None:
        entry = self._active_entry(payload.job_id)
        if entry is not None:
            await self._finish(replace(entry, status=JobStatus.COMPLETED, progress=100))

    async def handle_failed(self, payload: JobFailedPayload) -> None:
        entry = self._active_entry(payload.job_id)
        if entry is not None:
            await self._finish(replace(entry, status=JobStatus.FAILED, error=payload.error or None))

    def _active_entry(self, job_id: str) -> JobProgress | None:
        if job_id not in self._active:
            self._logger.debug("jobs.untracked_event", job_id=job_id)
            return None
        return self._jobs[job_id]

    async def _finish(self, entry: JobProgress) -> None:
        self._jobs[entry.job_id] = entry
        self._active.pop(entry.job_id, None)
        self._logger.info("jobs.finished", job_id=entry.job_id, status=entry.status.value, error=entry.error)
        if self._on_finished is not None:
            result = self._on_finished(entry)
            if inspect.isawaitable(result):
                await result
