"""Database repository for match history and feedback.

This module provides async SQLite operations for recording produced
matches and the append-only feedback given on them.
"""

import json
import sqlite3
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite

from staffmatch.feedback.models import AcceptanceSignal, Feedback, FeedbackOutcome
from staffmatch.matching.errors import FeedbackConflict
from staffmatch.matching.models import ContextType, Match

# SQL schema for the history and feedback tables
CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS match_history (
    match_id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL,
    candidate_id TEXT NOT NULL,
    context TEXT NOT NULL,
    criteria_fingerprint TEXT NOT NULL,
    category_scores TEXT NOT NULL,
    total_score REAL NOT NULL,
    rank INTEGER NOT NULL,
    computed_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS feedback (
    feedback_id TEXT PRIMARY KEY,
    match_id TEXT NOT NULL REFERENCES match_history(match_id),
    actor_id TEXT NOT NULL,
    outcome TEXT NOT NULL,
    rating INTEGER,
    comment TEXT,
    submitted_at TEXT NOT NULL,
    UNIQUE (match_id, actor_id, outcome)
);
"""

CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_history_subject ON match_history(subject_id);
CREATE INDEX IF NOT EXISTS idx_history_fingerprint ON match_history(criteria_fingerprint);
CREATE INDEX IF NOT EXISTS idx_feedback_match ON feedback(match_id);
"""


class FeedbackRepository:
    """Async SQLite repository for match history and feedback.

    Feedback rows are only ever inserted; there is no update or delete.
    """

    def __init__(self, db_path: Path | str):
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
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
            await conn.executescript(CREATE_TABLES_SQL)
            await conn.executescript(CREATE_INDEX_SQL)
            await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def record_matches(self, matches: Iterable[Match]) -> int:
        """Record produced matches; already-known match ids are left untouched.

        Returns:
            The number of new rows written.
        """
        rows = [
            (
                match.match_id,
                match.subject_id,
                match.candidate_id,
                match.context.value,
                match.criteria_fingerprint,
                json.dumps(match.category_scores, sort_keys=True),
                match.total_score,
                match.rank,
                match.computed_at.isoformat(),
            )
            for match in matches
        ]
        if not rows:
            return 0

        async with self._get_connection() as conn:
            before = conn.total_changes
            await conn.executemany(
                """
                INSERT OR IGNORE INTO match_history (
                    match_id, subject_id, candidate_id, context,
                    criteria_fingerprint, category_scores, total_score,
                    rank, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            await conn.commit()
            return conn.total_changes - before

    async def get_match(self, match_id: str) -> Match | None:
        """Get a recorded match by id.

        Args:
            match_id: The match id to look up.

        Returns:
            The match if found, None otherwise.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM match_history WHERE match_id = ?",
                (match_id,),
            )
            row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_match(row)

    async def list_matches_for_subject(self, subject_id: str) -> list[Match]:
        """List recorded matches for a subject, newest first."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM match_history
                WHERE subject_id = ?
                ORDER BY computed_at DESC, rank ASC
                """,
                (subject_id,),
            )
            rows = await cursor.fetchall()

        return [self._row_to_match(row) for row in rows]

    async def insert_feedback(self, feedback: Feedback) -> None:
        """Append a feedback record.

        Raises:
            FeedbackConflict: If the actor already gave this outcome for the match.
        """
        async with self._get_connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO feedback (
                        feedback_id, match_id, actor_id, outcome,
                        rating, comment, submitted_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        feedback.feedback_id,
                        feedback.match_id,
                        feedback.actor_id,
                        feedback.outcome.value,
                        feedback.rating,
                        feedback.comment,
                        feedback.submitted_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise FeedbackConflict(
                    feedback.match_id, feedback.actor_id, feedback.outcome.value
                ) from e
            await conn.commit()

    async def list_feedback(self, match_id: str) -> list[Feedback]:
        """List feedback for a match in submission order."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM feedback
                WHERE match_id = ?
                ORDER BY submitted_at ASC
                """,
                (match_id,),
            )
            rows = await cursor.fetchall()

        return [self._row_to_feedback(row) for row in rows]

    async def acceptance_signal(self, criteria_fingerprint: str) -> AcceptanceSignal:
        """Count accept/reject outcomes for matches produced under a fingerprint."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT f.outcome AS outcome, COUNT(*) AS count
                FROM feedback f
                JOIN match_history m ON m.match_id = f.match_id
                WHERE m.criteria_fingerprint = ?
                GROUP BY f.outcome
                """,
                (criteria_fingerprint,),
            )
            rows = await cursor.fetchall()

        counts = {row["outcome"]: int(row["count"]) for row in rows}
        return AcceptanceSignal(
            criteria_fingerprint=criteria_fingerprint,
            accepted=counts.get(FeedbackOutcome.ACCEPT.value, 0),
            rejected=counts.get(FeedbackOutcome.REJECT.value, 0),
        )

    async def acceptance_signals(self) -> list[AcceptanceSignal]:
        """Acceptance counts for every fingerprint that has feedback."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT m.criteria_fingerprint AS fingerprint,
                       SUM(CASE WHEN f.outcome = ? THEN 1 ELSE 0 END) AS accepted,
                       SUM(CASE WHEN f.outcome = ? THEN 1 ELSE 0 END) AS rejected
                FROM feedback f
                JOIN match_history m ON m.match_id = f.match_id
                GROUP BY m.criteria_fingerprint
                ORDER BY m.criteria_fingerprint
                """,
                (FeedbackOutcome.ACCEPT.value, FeedbackOutcome.REJECT.value),
            )
            rows = await cursor.fetchall()

        return [
            AcceptanceSignal(
                criteria_fingerprint=row["fingerprint"],
                accepted=int(row["accepted"] or 0),
                rejected=int(row["rejected"] or 0),
            )
            for row in rows
        ]

    async def outcome_counts_for_subject(self, subject_id: str) -> dict[FeedbackOutcome, int]:
        """Return feedback counts grouped by outcome for a subject's matches."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT f.outcome AS outcome, COUNT(*) AS count
                FROM feedback f
                JOIN match_history m ON m.match_id = f.match_id
                WHERE m.subject_id = ?
                GROUP BY f.outcome
                """,
                (subject_id,),
            )
            rows = await cursor.fetchall()

        counts: dict[FeedbackOutcome, int] = {}
        for row in rows:
            try:
                outcome = FeedbackOutcome(row["outcome"])
            except ValueError:
                continue
            counts[outcome] = int(row["count"])
        return counts

    def _row_to_match(self, row: aiosqlite.Row) -> Match:
        """Convert a database row to a Match."""
        return Match(
            match_id=row["match_id"],
            subject_id=row["subject_id"],
            candidate_id=row["candidate_id"],
            context=ContextType(row["context"]),
            category_scores=json.loads(row["category_scores"]),
            total_score=float(row["total_score"]),
            rank=int(row["rank"]),
            computed_at=datetime.fromisoformat(row["computed_at"]),
            criteria_fingerprint=row["criteria_fingerprint"],
        )

    def _row_to_feedback(self, row: aiosqlite.Row) -> Feedback:
        """Convert a database row to a Feedback record."""
        return Feedback(
            feedback_id=row["feedback_id"],
            match_id=row["match_id"],
            actor_id=row["actor_id"],
            outcome=FeedbackOutcome(row["outcome"]),
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
            rating=row["rating"],
            comment=row["comment"],
        )
