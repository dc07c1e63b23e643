"""SQLite session store for streamwatch."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from streamwatch.errors import PersistenceError, StoreConnectionError
from streamwatch.timeutil import calc_seconds, format_timestamp, parse_timestamp, utc_now


class Session(BaseModel):
    """One continuous interval of streaming by a subject.

    `end` is None only for a session still open in memory; stored rows
    always have it set.
    """

    subject_id: str
    start: datetime
    end: datetime | None = None
    id: int | None = None

    def duration_seconds(self, now: datetime | None = None) -> int:
        """Clamped duration; an open session is measured up to `now`."""
        end = self.end or now or utc_now()
        return calc_seconds(self.start, end)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id TEXT NOT NULL,
    start TEXT NOT NULL,
    "end" TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_subject ON sessions(subject_id);
CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start);
"""

# Rows are dropped this long after their start instant
RETENTION = timedelta(days=15)

logger = logging.getLogger(__name__)


class SessionStore:
    """SQLite-backed store of completed sessions.

    Expired rows are purged by the store itself, when it is opened and
    on every write. Callers only ever ask for ranges.

    Not thread-safe. Each thread should have its own SessionStore instance.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = utc_now,
        retention: timedelta = RETENTION,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._retention = retention
        self._init_schema()
        self._expire()
        self._conn.commit()

    def __enter__(self) -> "SessionStore":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self._conn.executescript(SCHEMA)

    @classmethod
    def open(cls, path: Path, **kwargs: Any) -> SessionStore:
        """Open or create a database at the given path.

        Raises:
            StoreConnectionError: If the database cannot be opened.
        """
        try:
            conn = sqlite3.connect(path)
            conn.row_factory = sqlite3.Row
            return cls(conn, **kwargs)
        except sqlite3.Error as e:
            raise StoreConnectionError(f"Cannot open session store at {path}: {e}") from e

    @classmethod
    def open_in_memory(cls, **kwargs: Any) -> SessionStore:
        """Create an in-memory database for testing."""
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return cls(conn, **kwargs)

    def _expire(self) -> int:
        cutoff = format_timestamp(self._clock() - self._retention)
        cursor = self._conn.execute("DELETE FROM sessions WHERE start < ?", (cutoff,))
        if cursor.rowcount:
            logger.debug("Expired %d sessions older than %s", cursor.rowcount, cutoff)
        return cursor.rowcount

    def create(self, session: Session) -> int:
        """Persist a closed session. Returns the row ID.

        Raises:
            PersistenceError: If the write fails.
        """
        try:
            with self._conn:
                self._expire()
                cursor = self._conn.execute(
                    'INSERT INTO sessions (subject_id, start, "end") VALUES (?, ?, ?)',
                    (
                        session.subject_id,
                        format_timestamp(session.start),
                        format_timestamp(session.end) if session.end else None,
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError("create session", e) from e
        return cursor.lastrowid

    def find_by_range(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        subject_id: str | None = None,
        limit: int | None = None,
    ) -> list[Session]:
        """Query sessions by the instant they started.

        Args:
            start: Inclusive lower bound on session start
            end: Exclusive upper bound on session start
            subject_id: Only sessions for this subject
            limit: Maximum number of sessions to return

        Returns:
            List of sessions ordered by start ascending.

        Raises:
            PersistenceError: If the read fails.
        """
        query = "SELECT * FROM sessions WHERE 1=1"
        params: list[str | int] = []

        if start is not None:
            query += " AND start >= ?"
            params.append(format_timestamp(start))
        if end is not None:
            query += " AND start < ?"
            params.append(format_timestamp(end))
        if subject_id is not None:
            query += " AND subject_id = ?"
            params.append(subject_id)

        query += " ORDER BY start ASC, id ASC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError("find sessions", e) from e
        return [_row_to_session(row) for row in rows]


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        subject_id=row["subject_id"],
        start=parse_timestamp(row["start"]),
        end=parse_timestamp(row["end"]) if row["end"] else None,
    )
