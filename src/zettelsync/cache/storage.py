"""Durable key/value storage for client-side state."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, Protocol

from zettelsync.metrics.observability import get_logger

AUTH_TOKEN_KEY = "authToken"
THEME_MODE_KEY = "themeMode"
DOCUMENT_CACHE_KEY = "documentCache"


class StorageError(RuntimeError):
    """Raised when the storage location cannot be used."""


class KeyValueStorage(Protocol):
    """Protocol for string-valued persisted storage."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value or None when the key is absent."""

    def set_item(self, key: str, value: str) -> None:
        """Persist a value for the key, replacing any previous value."""

    def remove_item(self, key: str) -> None:
        """Remove the key; removing an absent key is a no-op."""


class MemoryStorage:
    """Process-local storage used in tests and ephemeral sessions."""

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class JsonFileStorage:
    """One file per key inside a directory; writes replace the file atomically.

    A file that cannot be decoded reads as absent so callers fall back to
    their empty state.
    """

    _logger = get_logger("storage")

    def __init__(self, directory: str | Path, *, encoding: str = "utf-8") -> None:
        self._directory = Path(directory)
        self._encoding = encoding
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot use storage directory {self._directory}: {exc}") from exc

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding=self._encoding)
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            self._logger.warning("storage.corrupt", key=key, path=str(path), detail=str(exc))
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{key}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=self._encoding) as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
