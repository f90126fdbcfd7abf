"""Tests for the cache guard."""

import asyncio
from datetime import UTC, datetime

import pytest

from staffmatch.cache.guard import CacheGuard
from staffmatch.cache.memory import InMemoryMatchCache
from staffmatch.matching.errors import CacheUnavailable
from staffmatch.matching.models import ContextType, MatchResult


def _result() -> MatchResult:
    return MatchResult(
        subject_id="job-1",
        context=ContextType.JOB,
        fingerprint="fp",
        matches=(),
        threshold=0.7,
        top_k=50,
        computed_at=datetime(2026, 3, 2, tzinfo=UTC),
    )


class HangingCache:
    async def get(self, key):
        await asyncio.sleep(10)

    async def set(self, key, value, ttl_seconds):
        await asyncio.sleep(10)

    async def invalidate(self, key):
        await asyncio.sleep(10)

    async def invalidate_prefix(self, prefix):
        await asyncio.sleep(10)


class FailingCache:
    async def get(self, key):
        raise ConnectionError("refused")

    async def set(self, key, value, ttl_seconds):
        raise ConnectionError("refused")

    async def invalidate(self, key):
        raise ConnectionError("refused")

    async def invalidate_prefix(self, prefix):
        raise ConnectionError("refused")


class EagerFailingCache:
    """Backend whose methods raise before returning an awaitable."""

    def get(self, key):
        raise ConnectionError("pool exhausted")

    def set(self, key, value, ttl_seconds):
        raise ConnectionError("pool exhausted")

    def invalidate(self, key):
        raise ConnectionError("pool exhausted")

    def invalidate_prefix(self, prefix):
        raise ConnectionError("pool exhausted")


class TestCacheGuard:
    """Test CacheGuard."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        guard = CacheGuard(InMemoryMatchCache(), timeout=1.0)

        await guard.set_result("k", _result(), 60)

        assert await guard.get_result("k") == _result()

    @pytest.mark.asyncio
    async def test_miss(self):
        guard = CacheGuard(InMemoryMatchCache(), timeout=1.0)
        assert await guard.get_result("k") is None

    @pytest.mark.asyncio
    async def test_invalidate(self):
        guard = CacheGuard(InMemoryMatchCache(), timeout=1.0)
        await guard.set_result("k", _result(), 60)

        await guard.invalidate("k")

        assert await guard.get_result("k") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "set", "invalidate"])
    async def test_timeouts_raise_cache_unavailable(self, operation):
        guard = CacheGuard(HangingCache(), timeout=0.05)
        calls = {
            "get": lambda: guard.get_result("k"),
            "set": lambda: guard.set_result("k", _result(), 60),
            "invalidate": lambda: guard.invalidate("k"),
        }

        with pytest.raises(CacheUnavailable, match="timed out"):
            await calls[operation]()

    @pytest.mark.asyncio
    async def test_backend_errors_raise_cache_unavailable(self):
        guard = CacheGuard(FailingCache(), timeout=1.0)

        with pytest.raises(CacheUnavailable) as exc_info:
            await guard.get_result("k")

        assert isinstance(exc_info.value.original_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises_cache_unavailable(self):
        backend = InMemoryMatchCache()
        await backend.set("k", "garbage", 60)
        guard = CacheGuard(backend, timeout=1.0)

        with pytest.raises(CacheUnavailable, match="Unreadable"):
            await guard.get_result("k")

    @pytest.mark.asyncio
    async def test_invalidate_prefix(self):
        backend = InMemoryMatchCache()
        guard = CacheGuard(backend, timeout=1.0)
        await guard.set_result("matching:job:job-1:a", _result(), 60)
        await guard.set_result("matching:job:job-1:b", _result(), 60)

        assert await guard.invalidate_prefix("matching:job:job-1:") == 2
        assert len(backend) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "set", "invalidate", "invalidate_prefix"])
    async def test_synchronous_backend_errors_raise_cache_unavailable(self, operation):
        guard = CacheGuard(EagerFailingCache(), timeout=1.0)
        calls = {
            "get": lambda: guard.get_result("k"),
            "set": lambda: guard.set_result("k", _result(), 60),
            "invalidate": lambda: guard.invalidate("k"),
            "invalidate_prefix": lambda: guard.invalidate_prefix("k"),
        }

        with pytest.raises(CacheUnavailable, match="pool exhausted") as exc_info:
            await calls[operation]()

        assert isinstance(exc_info.value.original_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_encode_failure_raises_cache_unavailable(self, monkeypatch):
        def broken_encode(result):
            raise TypeError("not serializable")

        monkeypatch.setattr("staffmatch.cache.guard.encode_result", broken_encode)
        backend = InMemoryMatchCache()
        guard = CacheGuard(backend, timeout=1.0)

        with pytest.raises(CacheUnavailable, match="set failed"):
            await guard.set_result("k", _result(), 60)

        assert len(backend) == 0
