"""In-memory configuration store, for tests and as a fallback."""

from __future__ import annotations

import threading

from guildlink.models import (
    ConfigStore,
    GlobalConfig,
    GuildConfig,
    GuildConfigNotFoundError,
    default_global_config,
)


class MemoryConfigStore(ConfigStore):
    """Thread-safe store keeping copies of configs in a dict."""

    def __init__(self) -> None:
        self._configs: dict[str, GuildConfig] = {}
        self._global: GlobalConfig | None = None
        self._lock = threading.Lock()

    def get(self, guild_id: str) -> GuildConfig:
        with self._lock:
            config = self._configs.get(guild_id)
            if config is None:
                raise GuildConfigNotFoundError(guild_id)
            return config.copy()

    def set(self, guild_id: str, config: GuildConfig) -> None:
        if config is None:
            raise ValueError("config cannot be None")
        stored = config.copy()
        with self._lock:
            self._configs[guild_id] = stored

    def delete(self, guild_id: str) -> None:
        with self._lock:
            self._configs.pop(guild_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._configs)

    def clear(self) -> None:
        """Remove all guild configs and the global config."""
        with self._lock:
            self._configs = {}
            self._global = None

    def get_global(self) -> GlobalConfig:
        with self._lock:
            if self._global is None:
                return default_global_config()
            return self._global.copy()

    def set_global(self, config: GlobalConfig) -> None:
        if config is None:
            raise ValueError("global config cannot be None")
        with self._lock:
            self._global = config.copy()