"""Reconnecting WebSocket transport for server-pushed events."""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed

from zettelsync.metrics.observability import ClientMetrics, get_logger
from zettelsync.realtime.bus import EventBus, EventHandler
from zettelsync.realtime.events import EnvelopeDecodeError, EventType, decode_envelope, event_type_of

DEFAULT_RECONNECT_DELAY = 5.0


class SocketConnection(Protocol):
    """Subset of a websockets client connection the transport relies on."""

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames until the connection closes."""

    async def close(self) -> None:
        """Close the connection."""


Connector = Callable[[str], Awaitable[SocketConnection]]


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def websocket_connector(open_timeout: float = 10.0) -> Connector:
    async def _connect(url: str) -> SocketConnection:
        return await websockets.connect(url, open_timeout=open_timeout)

    return _connect


class ReconnectHandle:
    """Single cancellable pending reconnect owned by a transport."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self._delay = delay
        self._callback = callback
        self._timer: asyncio.TimerHandle | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> bool:
        """Arm the timer unless one is already outstanding."""

        if self._timer is not None:
            return False
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._delay, self._fire)
        return True

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self._callback()


class RealtimeTransport:
    """Keeps at most one live event socket and fans frames out to an ``EventBus``.

    The connection URL carries the session token as the ``token`` query
    parameter. An unintentional close schedules one reconnect after a fixed
    delay; ``disconnect()`` suppresses reconnection until the next
    ``connect()``. I/O failures are logged, never raised to the caller.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        bus: EventBus | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connector: Connector | None = None,
    ) -> None:
        self._url = url
        self._token = token or None
        self._bus = bus or EventBus()
        self._connector = connector or websocket_connector()
        self._reconnect = ReconnectHandle(reconnect_delay, self._on_reconnect_due)
        self._state = TransportState.DISCONNECTED
        self._connection: SocketConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending_connect: asyncio.Task[None] | None = None
        self._intentional_close = False
        # bumped on every teardown so late results of older attempts are discarded
        self._generation = 0
        self._logger = get_logger("realtime")

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is TransportState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.pending

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        self._bus.on(event_type, handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        self._bus.off(event_type, handler)

    async def connect(self) -> None:
        if self._state is not TransportState.DISCONNECTED:
            return
        if not self._token:
            self._logger.error("realtime.no_token")
            return

        self._intentional_close = False
        self._state = TransportState.CONNECTING
        generation = self._generation
        try:
            connection = await self._connector(self._build_url(self._token))
        except asyncio.CancelledError:
            if generation == self._generation:
                self._state = TransportState.DISCONNECTED
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            self._state = TransportState.DISCONNECTED
            self._logger.warning("realtime.connect_failed", url=self._url, detail=str(exc))
            self._schedule_reconnect()
            return

        if generation != self._generation:
            # torn down while the handshake was in flight
            await connection.close()
            return

        self._connection = connection
        self._state = TransportState.CONNECTED
        self._reconnect.cancel()
        self._reader = asyncio.create_task(self._read_loop(connection, generation))
        self._logger.info("realtime.connected", url=self._url)

    async def disconnect(self) -> None:
        self._intentional_close = True
        self._generation += 1
        self._reconnect.cancel()
        connection, self._connection = self._connection, None
        reader, self._reader = self._reader, None
        pending, self._pending_connect = self._pending_connect, None
        was_connected = self._state is TransportState.CONNECTED
        self._state = TransportState.DISCONNECTED
        if connection is not None:
            await connection.close()
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pending
        if was_connected:
            self._logger.info("realtime.disconnected", intentional=True)

    async def update_token(self, token: str | None) -> None:
        """Swap the session token: reconnect with a new one, or stay closed without one."""

        self._token = token or None
        await self.disconnect()
        if self._token:
            await self.connect()

    async def _read_loop(self, connection: SocketConnection, generation: int) -> None:
        try:
            async for frame in connection:
                await self._handle_frame(frame)
        except ConnectionClosed as exc:
            self._logger.warning("realtime.connection_lost", code=getattr(exc.rcvd, "code", None))
        except Exception as exc:
            self._logger.warning("realtime.connection_lost", detail=str(exc))
        finally:
            if generation == self._generation and self._connection is connection:
                self._connection = None
                self._reader = None
                self._state = TransportState.DISCONNECTED
                self._logger.info("realtime.disconnected", intentional=self._intentional_close)
                if not self._intentional_close:
                    self._schedule_reconnect()

    async def _handle_frame(self, frame: str | bytes) -> None:
        try:
            event = decode_envelope(frame)
        except EnvelopeDecodeError as exc:
            ClientMetrics.frames_dropped.inc()
            self._logger.error("realtime.bad_frame", detail=str(exc))
            return
        event_type = event_type_of(event)
        ClientMetrics.events_received.labels(event_type=event_type.value).inc()
        if event_type is EventType.CONNECTED:
            self._logger.info("realtime.handshake", message=event.payload.message)
        await self._bus.dispatch(event)

    def _schedule_reconnect(self) -> None:
        if self._reconnect.schedule():
            ClientMetrics.reconnects_scheduled.inc()
            self._logger.info("realtime.reconnect_scheduled", delay_seconds=self._reconnect.delay)

    def _on_reconnect_due(self) -> None:
        self._logger.info("realtime.reconnecting")
        self._pending_connect = asyncio.get_running_loop().create_task(self.connect())

    def _build_url(self, token: str) -> str:
        parts = urlsplit(self._url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "token"]
        query.append(("token", token))
        return urlunsplit(parts._replace(query=urlencode(query)))
