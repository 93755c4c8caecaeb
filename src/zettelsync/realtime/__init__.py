"""Realtime event channel."""

from .bus import EventBus, EventHandler
from .events import (
    ConnectedPayload,
    DocumentCreatedPayload,
    DocumentDeletedPayload,
    DocumentsUpdatedPayload,
    EnvelopeDecodeError,
    Event,
    EventType,
    JobCompletedPayload,
    JobFailedPayload,
    JobProgressPayload,
    decode_envelope,
    encode_envelope,
)
from .transport import Connector, RealtimeTransport, ReconnectHandle, TransportState, websocket_connector

__all__ = [
    "ConnectedPayload",
    "Connector",
    "DocumentCreatedPayload",
    "DocumentDeletedPayload",
    "DocumentsUpdatedPayload",
    "EnvelopeDecodeError",
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
    "JobCompletedPayload",
    "JobFailedPayload",
    "JobProgressPayload",
    "RealtimeTransport",
    "ReconnectHandle",
    "TransportState",
    "decode_envelope",
    "encode_envelope",
    "websocket_connector",
]
