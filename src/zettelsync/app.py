"""Application root wiring the session, gateway, transport and document cache."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from zettelsync.api.client import ApiGateway
from zettelsync.api.schemas import ApiResult, AuthResponse
from zettelsync.cache.projection import DocumentCache
from zettelsync.cache.storage import JsonFileStorage, KeyValueStorage
from zettelsync.config import Settings, get_settings
from zettelsync.metrics.observability import bind_session_context, clear_session_context, configure_logging, get_logger
from zettelsync.realtime.transport import Connector, RealtimeTransport, websocket_connector
from zettelsync.services.sync import DocumentSync
from zettelsync.session import Session, ThemePreference


@dataclass(frozen=True)
class ClientDependencies:
    storage: KeyValueStorage
    session: Session
    theme: ThemePreference
    gateway: ApiGateway
    transport: RealtimeTransport
    cache: DocumentCache
    sync: DocumentSync


def build_dependencies(
    settings: Settings,
    *,
    storage: KeyValueStorage | None = None,
    connector: Connector | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ClientDependencies:
    storage = storage or JsonFileStorage(settings.storage_dir)
    session = Session(storage)
    gateway = ApiGateway(
        settings.api_url,
        token_provider=lambda: session.token,
        settings=settings,
        transport=http_transport,
    )
    transport = RealtimeTransport(
        settings.ws_url,
        token=session.token,
        reconnect_delay=settings.reconnect_delay_seconds,
        connector=connector or websocket_connector(open_timeout=settings.ws_open_timeout),
    )
    session.subscribe(transport.update_token)
    cache = DocumentCache(storage, staleness_ms=settings.cache_staleness_ms)
    sync = DocumentSync(cache, gateway, transport.bus)
    return ClientDependencies(
        storage=storage,
        session=session,
        theme=ThemePreference(storage),
        gateway=gateway,
        transport=transport,
        cache=cache,
        sync=sync,
    )


class ClientApp:
    """Owns the single realtime transport and hands it to consumers explicitly."""

    def __init__(self, *, settings: Settings | None = None, dependencies: ClientDependencies | None = None) -> None:
        self._settings = settings or get_settings()
        configure_logging()
        self._deps = dependencies or build_dependencies(self._settings)
        self._logger = get_logger("app")

    @property
    def dependencies(self) -> ClientDependencies:
        return self._deps

    @property
    def sync(self) -> DocumentSync:
        return self._deps.sync

    @property
    def gateway(self) -> ApiGateway:
        return self._deps.gateway

    @property
    def transport(self) -> RealtimeTransport:
        return self._deps.transport

    async def start(self) -> None:
        """Open the event channel (if signed in) and bring the projection up to date."""

        await self._deps.transport.connect()
        self._deps.sync.attach()
        if self._deps.session.is_authenticated:
            await self._deps.sync.mount()
        else:
            self._deps.cache.load()
        self._logger.info("app.started", authenticated=self._deps.session.is_authenticated)

    async def login(self, email: str, password: str) -> ApiResult[AuthResponse]:
        result = await self._deps.gateway.login(email, password)
        if not result.success:
            return result
        # never let a previous account's snapshot leak into the new session
        self._deps.cache.clear()
        await self._deps.session.rotate(result.data.access_token)
        if result.data.user is not None:
            bind_session_context(user_id=result.data.user.id)
        await self._deps.sync.mount()
        return result

    async def signup(self, email: str, password: str, name: str) -> ApiResult[dict]:
        return await self._deps.gateway.signup(email, password, name)

    async def logout(self) -> None:
        self._deps.cache.clear()
        await self._deps.session.rotate(None)
        clear_session_context()
        self._logger.info("app.logged_out")

    async def close(self) -> None:
        self._deps.sync.detach()
        await self._deps.transport.disconnect()
        await self._deps.gateway.aclose()

    async def __aenter__(self) -> "ClientApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
