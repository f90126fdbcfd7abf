"""Single-process in-memory match cache."""

from __future__ import annotations

import time
from collections.abc import Callable


class InMemoryMatchCache:
    """Dict-backed cache with per-entry expiry.

    Expired entries are dropped lazily on read and when the cache grows
    past ``max_entries``.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (value, self._clock() + ttl_seconds)
        if len(self._entries) > self.max_entries:
            self._evict()

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        # Still full: drop the entries closest to expiry.
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            by_expiry = sorted(self._entries.items(), key=lambda item: item[1][1])
            for key, _ in by_expiry[:overflow]:
                del self._entries[key]
