"""Typed realtime event envelopes and their decoder."""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from zettelsync.api.schemas import Document


class EventType(str, Enum):
    """Closed set of event tags the server pushes; values are the wire tags."""

    CONNECTED = "connected"
    DOCUMENT_CREATED = "document:created"
    DOCUMENT_DELETED = "document:deleted"
    DOCUMENTS_UPDATED = "documents:updated"
    JOB_PROGRESS = "job-progress"
    JOB_COMPLETED = "job-completed"
    JOB_FAILED = "job-failed"


class EnvelopeDecodeError(ValueError):
    """Raised when an inbound frame is not a valid event envelope."""


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    timestamp: Optional[int] = None


class ConnectedPayload(_Payload):
    message: str = ""


class DocumentCreatedPayload(_Payload):
    document: Document


class DocumentDeletedPayload(_Payload):
    document_id: str


class DocumentsUpdatedPayload(_Payload):
    documents: List[Document]


class JobProgressPayload(_Payload):
    job_id: str
    progress: int = Field(..., ge=0, le=100)
    status: Literal["processing", "completed", "failed"] = "processing"


class JobCompletedPayload(_Payload):
    job_id: str


class JobFailedPayload(_Payload):
    job_id: str
    error: str = ""


class ConnectedEvent(BaseModel):
    type: Literal["connected"]
    payload: ConnectedPayload = Field(default_factory=ConnectedPayload)


class DocumentCreatedEvent(BaseModel):
    type: Literal["document:created"]
    payload: DocumentCreatedPayload


class DocumentDeletedEvent(BaseModel):
    type: Literal["document:deleted"]
    payload: DocumentDeletedPayload


class DocumentsUpdatedEvent(BaseModel):
    type: Literal["documents:updated"]
    payload: DocumentsUpdatedPayload


class JobProgressEvent(BaseModel):
    type: Literal["job-progress"]
    payload: JobProgressPayload


class JobCompletedEvent(BaseModel):
    type: Literal["job-completed"]
    payload: JobCompletedPayload


class JobFailedEvent(BaseModel):
    type: Literal["job-failed"]
    payload: JobFailedPayload


Event = Annotated[
    Union[
        ConnectedEvent,
        DocumentCreatedEvent,
        DocumentDeletedEvent,
        DocumentsUpdatedEvent,
        JobProgressEvent,
        JobCompletedEvent,
        JobFailedEvent,
    ],
    Field(discriminator="type"),
]

EventPayload = Union[
    ConnectedPayload,
    DocumentCreatedPayload,
    DocumentDeletedPayload,
    DocumentsUpdatedPayload,
    JobProgressPayload,
    JobCompletedPayload,
    JobFailedPayload,
]

_EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)


def decode_envelope(frame: str | bytes) -> Event:
    """Decode one inbound frame into a typed event."""

    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EnvelopeDecodeError(f"Frame is not UTF-8: {exc}") from exc
    try:
        raw = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise EnvelopeDecodeError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(raw, dict) or "type" not in raw:
        raise EnvelopeDecodeError("Frame is not an envelope with a type tag")
    if raw.get("payload") is None:
        raw = {**raw, "payload": {}}
    try:
        return _EVENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise EnvelopeDecodeError(f"Invalid {raw.get('type')!r} envelope: {exc}") from exc


def event_type_of(event: Event) -> EventType:
    return EventType(event.type)


def encode_envelope(event_type: EventType, payload: EventPayload) -> str:
    """Serialize an envelope the way the server frames it."""

    return json.dumps(
        {"type": event_type.value, "payload": payload.model_dump(mode="json", exclude_none=True)},
    )
