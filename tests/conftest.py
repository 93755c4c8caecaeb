from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from zettelsync.api.client import ApiGateway
from zettelsync.cache.storage import MemoryStorage
from zettelsync.config import Settings

_CLOSED = object()


class FakeConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.closed = False
        self._frames: asyncio.Queue = asyncio.Queue()

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> str | bytes:
        frame = await self._frames.get()
        if frame is _CLOSED:
            raise StopAsyncIteration
        if isinstance(frame, BaseException):
            raise frame
        return frame

    def push(self, frame: str | bytes) -> None:
        self._frames.put_nowait(frame)

    def push_event(self, event_type: str, payload: dict[str, Any]) -> None:
        self.push(json.dumps({"type": event_type, "payload": payload}))

    def drop(self) -> None:
        """Simulate the server going away."""

        self._frames.put_nowait(_CLOSED)

    def fail(self, exc: BaseException) -> None:
        self._frames.put_nowait(exc)

    async def close(self) -> None:
        self.closed = True
        self._frames.put_nowait(_CLOSED)


class FakeConnector:
    def __init__(self, failures: int = 0) -> None:
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self._failures = failures

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if self._failures > 0:
            self._failures -= 1
            raise OSError("connection refused")
        connection = FakeConnection(url)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.005)
    return True


@pytest.fixture
def settle() -> Callable:
    return _settle


@pytest.fixture
def wait_until() -> Callable:
    return _wait_until


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def connector_factory() -> type[FakeConnector]:
    return FakeConnector


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        api_url="http://kb.test/v1",
        ws_url="ws://kb.test/v1/events/ws",
        storage_dir=tmp_path / "state",
        reconnect_delay_seconds=0.01,
    )


@pytest.fixture
def make_gateway(test_settings: Settings):
    """Build an ApiGateway whose HTTP traffic goes to ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], token: str | None = "tok-1") -> ApiGateway:
        return ApiGateway(
            settings=test_settings,
            token_provider=lambda: token,
            transport=httpx.MockTransport(handler),
        )

    return _make
