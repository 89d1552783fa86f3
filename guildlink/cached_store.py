"""LRU cache in front of any configuration store."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from cachetools import LRUCache

from guildlink.models import ConfigStore, GlobalConfig, GuildConfig

_DEFAULT_SIZE = 100
_DEFAULT_TTL = timedelta(hours=1)


@dataclass(frozen=True)
class CacheConfig:
    """Cache capacity and entry lifetime; non-positive values select defaults."""

    size: int = _DEFAULT_SIZE
    ttl: timedelta = _DEFAULT_TTL


class CachedConfigStore(ConfigStore):
    """Caches guild configs from a backend store for a limited time."""

    def __init__(
        self,
        backend: ConfigStore,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or CacheConfig()
        size = config.size if config.size > 0 else _DEFAULT_SIZE
        ttl = config.ttl if config.ttl > timedelta(0) else _DEFAULT_TTL
        self._backend = backend
        self._cache: LRUCache = LRUCache(maxsize=size)
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._lock = threading.Lock()

    def _store(self, guild_id: str, config: GuildConfig) -> None:
        entry = (config.copy(), self._clock())
        with self._lock:
            self._cache[guild_id] = entry

    def get(self, guild_id: str) -> GuildConfig:
        """Return a cached copy while fresh, otherwise fetch from the backend."""
        with self._lock:
            entry = self._cache.get(guild_id)
        if entry is not None:
            cached, cached_at = entry
            if self._clock() - cached_at < self._ttl:
                return cached.copy()
        config = self._backend.get(guild_id)
        self._store(guild_id, config)
        return config

    def set(self, guild_id: str, config: GuildConfig) -> None:
        """Write to the backend, then to the cache. A None config is ignored."""
        if config is None:
            return
        self._backend.set(guild_id, config)
        self._store(guild_id, config)

    def delete(self, guild_id: str) -> None:
        self._backend.delete(guild_id)
        self.invalidate_cache(guild_id)

    def invalidate_cache(self, guild_id: str) -> None:
        with self._lock:
            self._cache.pop(guild_id, None)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def refresh_cache(self, guild_id: str) -> GuildConfig:
        """Drop the cached entry and fetch the config anew."""
        self.invalidate_cache(guild_id)
        return self.get(guild_id)

    def get_global(self) -> GlobalConfig:
        return self._backend.get_global()

    def set_global(self, config: GlobalConfig) -> None:
        self._backend.set_global(config)