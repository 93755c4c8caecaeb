from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest

from zettelsync.realtime.events import EventType
from zettelsync.realtime.transport import RealtimeTransport, ReconnectHandle, TransportState

WS_URL = "ws://kb.test/v1/events/ws"


def _token_of(url: str) -> str:
    return parse_qs(urlsplit(url).query)["token"][0]


def _transport(connector, token: str | None = "tok-1", delay: float = 0.01) -> RealtimeTransport:
    return RealtimeTransport(WS_URL, token=token, reconnect_delay=delay, connector=connector)


@pytest.mark.asyncio
async def test_connect_without_token_makes_no_attempt(connector) -> None:
    transport = _transport(connector, token=None)
    await transport.connect()
    assert connector.urls == []
    assert transport.state is TransportState.DISCONNECTED
    assert not transport.reconnect_pending


@pytest.mark.asyncio
async def test_connect_appends_token_and_is_idempotent(connector) -> None:
    transport = _transport(connector, token="a b&c")
    await transport.connect()
    await transport.connect()

    assert len(connector.urls) == 1
    assert connector.urls[0].startswith(WS_URL + "?")
    assert _token_of(connector.urls[0]) == "a b&c"
    assert transport.is_connected
    await transport.disconnect()


@pytest.mark.asyncio
async def test_frames_reach_handlers_and_bad_frames_are_dropped(connector, settle) -> None:
    transport = _transport(connector)
    received: list[str] = []
    transport.on(EventType.DOCUMENT_DELETED, lambda payload: received.append(payload.document_id))

    await transport.connect()
    connection = connector.last
    connection.push("{broken")
    connection.push_event("document:unknown", {})
    connection.push_event("document:deleted", {"document_id": "d1"})
    await settle()

    assert received == ["d1"]
    assert transport.is_connected
    await transport.disconnect()


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_other_handlers(connector, settle) -> None:
    transport = _transport(connector)
    seen = []

    def broken(payload) -> None:
        raise ValueError("handler bug")

    def record(payload) -> None:
        seen.append(payload)

    transport.on(EventType.DOCUMENT_CREATED, broken)
    transport.on(EventType.DOCUMENT_CREATED, record)
    await transport.connect()
    connector.last.push_event("document:created", {"document": {"id": "d1"}})
    await settle()

    assert [payload.document.id for payload in seen] == ["d1"]
    assert transport.is_connected
    await transport.disconnect()


@pytest.mark.asyncio
async def test_unintentional_close_schedules_one_reconnect(connector, settle) -> None:
    transport = _transport(connector, delay=0.05)
    await transport.connect()
    connector.last.drop()
    await settle()

    assert transport.state is TransportState.DISCONNECTED
    assert transport.reconnect_pending
    assert len(connector.urls) == 1

    await asyncio.sleep(0.1)
    await settle()
    assert len(connector.urls) == 2
    assert transport.is_connected
    assert not transport.reconnect_pending
    await transport.disconnect()


@pytest.mark.asyncio
async def test_disconnect_before_timer_prevents_reconnect(connector, settle) -> None:
    transport = _transport(connector, delay=0.05)
    await transport.connect()
    connector.last.drop()
    await settle()
    assert transport.reconnect_pending

    await transport.disconnect()
    assert not transport.reconnect_pending
    await asyncio.sleep(0.1)
    await settle()
    assert len(connector.urls) == 1
    assert transport.state is TransportState.DISCONNECTED


@pytest.mark.asyncio
async def test_intentional_disconnect_does_not_reconnect(connector, settle) -> None:
    transport = _transport(connector)
    await transport.connect()
    connection = connector.last
    await transport.disconnect()
    await asyncio.sleep(0.05)
    await settle()

    assert connection.closed
    assert len(connector.urls) == 1
    assert not transport.reconnect_pending


@pytest.mark.asyncio
async def test_failed_open_retries_until_connected(connector_factory) -> None:
    connector = connector_factory(failures=2)
    transport = _transport(connector, delay=0.01)
    await transport.connect()
    assert transport.reconnect_pending

    for _ in range(20):
        if transport.is_connected:
            break
        await asyncio.sleep(0.02)
    assert transport.is_connected
    assert len(connector.urls) == 3
    await transport.disconnect()


@pytest.mark.asyncio
async def test_update_token_none_closes_without_reconnect(connector, settle) -> None:
    transport = _transport(connector)
    await transport.connect()
    connection = connector.last

    await transport.update_token(None)
    await asyncio.sleep(0.05)
    await settle()

    assert connection.closed
    assert transport.state is TransportState.DISCONNECTED
    assert not transport.reconnect_pending
    assert not transport.has_token
    assert len(connector.urls) == 1


@pytest.mark.asyncio
async def test_update_token_reconnects_once_with_new_token(connector, settle) -> None:
    transport = _transport(connector, token="old")
    await transport.connect()
    old_connection = connector.last

    await transport.update_token("new")
    await asyncio.sleep(0.05)
    await settle()

    assert old_connection.closed
    assert [_token_of(url) for url in connector.urls] == ["old", "new"]
    assert transport.is_connected
    await transport.disconnect()


@pytest.mark.asyncio
async def test_handshake_event_is_dispatched(connector, settle) -> None:
    transport = _transport(connector)
    messages: list[str] = []
    transport.on(EventType.CONNECTED, lambda payload: messages.append(payload.message))
    await transport.connect()
    connector.last.push_event("connected", {"message": "WebSocket connection established"})
    await settle()
    assert messages == ["WebSocket connection established"]
    await transport.disconnect()


@pytest.mark.asyncio
async def test_reconnect_handle_collapses_duplicate_scheduling() -> None:
    fired: list[int] = []
    handle = ReconnectHandle(0.01, lambda: fired.append(1))

    assert handle.schedule()
    assert not handle.schedule()
    await asyncio.sleep(0.05)
    assert fired == [1]
    assert not handle.pending

    assert handle.schedule()
    handle.cancel()
    await asyncio.sleep(0.05)
    assert fired == [1]


@pytest.mark.asyncio
async def test_unexpected_read_error_reconnects_without_leaking(connector, settle) -> None:
    transport = _transport(connector, delay=0.05)
    await transport.connect()
    reader = transport._reader
    connector.last.fail(RuntimeError("socket reset"))
    await settle()

    assert reader.done()
    assert reader.exception() is None
    assert transport.state is TransportState.DISCONNECTED
    assert transport.reconnect_pending

    await asyncio.sleep(0.1)
    await settle()
    assert transport.is_connected
    assert len(connector.urls) == 2
    await transport.disconnect()


class _StallingConnector:
    """Refuses the first attempt, then hangs on every later handshake."""

    def __init__(self) -> None:
        self.calls = 0
        self.stalled = asyncio.Event()
        self.cancelled = False

    async def __call__(self, url: str):
        self.calls += 1
        if self.calls == 1:
            raise OSError("connection refused")
        self.stalled.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.mark.asyncio
async def test_disconnect_cancels_reconnect_in_flight() -> None:
    connector = _StallingConnector()
    transport = _transport(connector, delay=0.01)
    await transport.connect()
    await asyncio.wait_for(connector.stalled.wait(), timeout=1.0)
    assert transport.state is TransportState.CONNECTING

    await transport.disconnect()

    assert connector.cancelled
    assert transport.state is TransportState.DISCONNECTED
    assert not transport.reconnect_pending
    assert connector.calls == 2
