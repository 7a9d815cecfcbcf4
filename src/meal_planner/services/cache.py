"""Volatile cache abstractions."""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


class VolatileCache(Protocol):
    """Fast key-value cache with per-entry TTL."""

    name: str

    async def get(self, key: str) -> dict[str, object] | None:
        """Return a cached value if present and not expired."""

    async def set(self, key: str, value: dict[str, object], ttl_seconds: int) -> None:
        """Store a cached value with a TTL in seconds."""

    async def delete(self, key: str) -> None:
        """Remove a single key."""

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with the prefix and return the count."""

    async def close(self) -> None:
        """Release connections held by the cache."""


@dataclass
class _CacheEntry:
    value: dict[str, object]
    expires_at: datetime


@dataclass
class InMemoryCache(VolatileCache):
    """Process-local cache used when no Redis server is reachable."""

    max_size: int
    _entries: "OrderedDict[str, _CacheEntry]"
    name: str = "memory"

    def __init__(self, max_size: int = 1000) -> None:
        self.max_size = max_size
        self._entries = OrderedDict()
        self.name = "memory"

    async def get(self, key: str) -> dict[str, object] | None:
        """Return a cached value if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if datetime.now(tz=UTC) >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: dict[str, object], ttl_seconds: int) -> None:
        """Store a cached value with a TTL, evicting the oldest when full."""
        expires_at = datetime.now(tz=UTC) + timedelta(seconds=ttl_seconds)
        self._entries.pop(key, None)
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)
        while self.max_size > 0 and len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        """Remove a single key."""
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key with the given prefix."""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def close(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
