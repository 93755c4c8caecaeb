"""Session token and user preferences persisted in local storage."""

from __future__ import annotations

import inspect
import json
from typing import Awaitable, Callable, List, Union

from zettelsync.cache.storage import AUTH_TOKEN_KEY, THEME_MODE_KEY, KeyValueStorage
from zettelsync.metrics.observability import get_logger

TokenListener = Callable[[Union[str, None]], Union[None, Awaitable[None]]]


class Session:
    """Holds the session token; ``rotate`` is the only way to change it.

    Consumers either read ``token`` at use time (the API gateway) or register
    a listener to be told about rotations (the realtime transport).
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._token: str | None = storage.get_item(AUTH_TOKEN_KEY) or None
        self._listeners: List[TokenListener] = []
        self._logger = get_logger("session")

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def subscribe(self, listener: TokenListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: TokenListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def rotate(self, token: str | None) -> None:
        token = token or None
        if token is None:
            self._storage.remove_item(AUTH_TOKEN_KEY)
        else:
            self._storage.set_item(AUTH_TOKEN_KEY, token)
        self._token = token
        self._logger.info("session.token_rotated", authenticated=token is not None)
        for listener in list(self._listeners):
            result = listener(token)
            if inspect.isawaitable(result):
                await result


class ThemePreference:
    """Dark-mode flag stored as a JSON boolean; defaults to dark."""

    def __init__(self, storage: KeyValueStorage, *, default_dark: bool = True) -> None:
        self._storage = storage
        self._default = default_dark

    @property
    def dark_mode(self) -> bool:
        raw = self._storage.get_item(THEME_MODE_KEY)
        if raw is None:
            return self._default
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return self._default
        return value if isinstance(value, bool) else self._default

    def set_dark_mode(self, enabled: bool) -> None:
        self._storage.set_item(THEME_MODE_KEY, json.dumps(bool(enabled)))

    def toggle(self) -> bool:
        enabled = not self.dark_mode
        self.set_dark_mode(enabled)
        return enabled
