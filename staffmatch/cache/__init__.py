"""Pluggable match cache.

Public API:
    - MatchCache: Backend contract (get/set/invalidate/invalidate_prefix)
    - InMemoryMatchCache: Single-process backend
    - SQLiteMatchCache: File-backed backend shared across processes
    - CacheGuard: Timeout/degrade wrapper used by the matching service
"""

from staffmatch.cache.base import MatchCache
from staffmatch.cache.codec import decode_result, encode_result
from staffmatch.cache.guard import CacheGuard
from staffmatch.cache.memory import InMemoryMatchCache
from staffmatch.cache.sqlite import SQLiteMatchCache

__all__ = [
    "MatchCache",
    "InMemoryMatchCache",
    "SQLiteMatchCache",
    "CacheGuard",
    "encode_result",
    "decode_result",
]
