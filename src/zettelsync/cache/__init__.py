"""Local persisted state: key/value storage and the document projection."""

from .projection import DEFAULT_STALENESS_MS, CacheRecord, DocumentCache
from .storage import (
    AUTH_TOKEN_KEY,
    DOCUMENT_CACHE_KEY,
    THEME_MODE_KEY,
    JsonFileStorage,
    KeyValueStorage,
    MemoryStorage,
    StorageError,
)

__all__ = [
    "AUTH_TOKEN_KEY",
    "CacheRecord",
    "DEFAULT_STALENESS_MS",
    "DOCUMENT_CACHE_KEY",
    "DocumentCache",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "StorageError",
    "THEME_MODE_KEY",
]
