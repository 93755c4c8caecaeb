"""Runtime configuration for the zettelsync client."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="zettelsync_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Backend endpoints
    api_url: str = "http://localhost:8080/v1"
    ws_url: str = "ws://localhost:8080/v1/events/ws"
    request_timeout: float = 30.0

    # Realtime channel
    reconnect_delay_seconds: float = 5.0
    ws_open_timeout: float = 10.0

    # Local persisted state
    storage_dir: Path = Path("./.zettelsync")
    cache_staleness_seconds: int = 3600

    # Search defaults applied when the caller omits them
    search_default_limit: int = 100
    search_default_similarity_threshold: float = 0.3

    allowed_source_types: tuple[str, ...] | str = ("standard", "notion", "obsidian", "roam", "logseq")

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def cache_staleness_ms(self) -> int:
        return self.cache_staleness_seconds * 1000

    @property
    def allowed_source_types_tuple(self) -> tuple[str, ...]:
        value = self.allowed_source_types
        if isinstance(value, tuple):
            return value
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return tuple(parts) if parts else ("standard",)
        return ("standard",)


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
