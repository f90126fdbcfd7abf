"""Timeout and failure isolation around a match cache backend."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from staffmatch.cache.base import MatchCache
from staffmatch.cache.codec import decode_result, encode_result
from staffmatch.matching.errors import CacheUnavailable
from staffmatch.matching.models import MatchResult


class CacheGuard:
    """Wrap a backend so every call is bounded by ``timeout`` seconds.

    Any backend failure, timeout or undecodable entry surfaces as
    ``CacheUnavailable``; callers fall back to direct computation.
    """

    def __init__(self, backend: MatchCache, timeout: float) -> None:
        self.backend = backend
        self.timeout = timeout

    async def get_result(self, key: str) -> MatchResult | None:
        payload = await self._call("get", lambda: self.backend.get(key))
        if payload is None:
            return None
        try:
            return decode_result(payload)
        except ValueError as e:
            raise CacheUnavailable(f"Unreadable cache entry {key}: {e}", e) from e

    async def set_result(self, key: str, result: MatchResult, ttl_seconds: int) -> None:
        await self._call(
            "set", lambda: self.backend.set(key, encode_result(result), ttl_seconds)
        )

    async def invalidate(self, key: str) -> None:
        await self._call("invalidate", lambda: self.backend.invalidate(key))

    async def invalidate_prefix(self, prefix: str) -> int:
        return await self._call(
            "invalidate_prefix", lambda: self.backend.invalidate_prefix(prefix)
        )

    async def _call(self, operation: str, make_call: Callable[[], Awaitable[Any]]) -> Any:
        # The backend call is built inside the try so synchronous raises degrade too.
        try:
            return await asyncio.wait_for(make_call(), timeout=self.timeout)
        except TimeoutError as e:
            raise CacheUnavailable(
                f"Cache {operation} timed out after {self.timeout:.2f}s", e
            ) from e
        except CacheUnavailable:
            raise
        except Exception as e:
            raise CacheUnavailable(f"Cache {operation} failed: {e}", e) from e
