"""SQLite-backed match cache.

Uses aiosqlite so several processes on one host can share cached results
through a single database file.
"""

import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

# SQL schema for the cache table
CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS match_cache (
    cache_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    expires_at REAL NOT NULL
)
"""

CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_match_cache_expires ON match_cache(expires_at);
"""


class SQLiteMatchCache:
    """Async SQLite cache of serialized ranked results.

    Expiry uses wall-clock time so entries stay valid across processes.
    """

    def __init__(self, db_path: Path | str, clock: Callable[[], float] = time.time):
        """Initialize the cache.

        Args:
            db_path: Path to the SQLite database file.
            clock: Source of the current time in seconds.
        """
        self.db_path = Path(db_path)
        self._clock = clock
        self._connection: aiosqlite.Connection | None = None

    @asynccontextmanager
    async def _get_connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get a database connection.

        Yields:
            An aiosqlite connection.
        """
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        yield self._connection

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._get_connection() as conn:
            await conn.execute(CREATE_TABLE_SQL)
            await conn.executescript(CREATE_INDEX_SQL)
            await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def get(self, key: str) -> str | None:
        """Return the cached payload for ``key`` if it has not expired."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT payload, expires_at FROM match_cache WHERE cache_key = ?",
                (key,),
            )
            row = await cursor.fetchone()

        if row is None:
            return None
        if row["expires_at"] <= self._clock():
            await self.invalidate(key)
            return None
        return row["payload"]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        if ttl_seconds <= 0:
            await self.invalidate(key)
            return

        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO match_cache (cache_key, payload, expires_at)
                VALUES (?, ?, ?)
                """,
                (key, value, self._clock() + ttl_seconds),
            )
            await conn.commit()

    async def invalidate(self, key: str) -> None:
        """Remove ``key`` from the cache."""
        async with self._get_connection() as conn:
            await conn.execute("DELETE FROM match_cache WHERE cache_key = ?", (key,))
            await conn.commit()

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            The number of entries removed.
        """
        async with self._get_connection() as conn:
            # substr() instead of LIKE: keys may contain % and _.
            cursor = await conn.execute(
                "DELETE FROM match_cache WHERE substr(cache_key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            await conn.commit()
            return cursor.rowcount

    async def purge_expired(self) -> int:
        """Delete all expired entries.

        Returns:
            The number of entries removed.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM match_cache WHERE expires_at <= ?",
                (self._clock(),),
            )
            await conn.commit()
            return cursor.rowcount
