"""Shared client-side domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal


class JobStatus(str, Enum):
    """Lifecycle state of a server-side ingestion job."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


@dataclass(frozen=True)
class JobProgress:
    """Progress of one upload job as observed over the realtime channel."""

    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ExportItem:
    """Titled block of text offered for a Markdown export.

    ``kind`` is ``"document"`` for a whole document assembled from its chunks
    and ``"chunk"`` for a single search hit.
    """

    id: str
    kind: Literal["document", "chunk"]
    title: str
    content: str
    document_id: str
    chunk_index: int | None = None
