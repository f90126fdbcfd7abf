"""Key-value contract shared by match cache backends."""

from __future__ import annotations

from typing import Protocol


class MatchCache(Protocol):
    """Async key-value store holding serialized ranked results with a TTL.

    A single-process map and a shared store are interchangeable behind this
    interface. Writes are idempotent overwrites.
    """

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if missing or expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def invalidate(self, key: str) -> None:
        """Remove ``key``; removing a missing key is not an error."""
        ...

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; return how many were removed."""
        ...
