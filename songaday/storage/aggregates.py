"""SQLite persistence for per-user listening aggregates"""

import sqlite3
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from songaday.models.aggregate import UserAggregate


logger = logging.getLogger(__name__)


class AggregateStore:
    """One row per user and year holding the JSON dump of a UserAggregate.

    A connection is opened per operation so schedulers on different threads
    can share one store.
    """

    def __init__(self, db_path: Path):
        """Initialize aggregate store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS aggregates (
                    user_id TEXT NOT NULL,
                    year INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, year)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_aggregates_year
                ON aggregates(year)
            """)
            conn.commit()

    def _decode(self, user_id: str, payload: str) -> Optional[UserAggregate]:
        try:
            return UserAggregate.model_validate_json(payload)
        except ValidationError as e:
            logger.error("%s: stored aggregate is unreadable: %s", user_id, e)
            return None

    def load(self, user_id: str, year: int) -> Optional[UserAggregate]:
        """Load a user's aggregate for one year.

        Args:
            user_id: Spotify user id
            year: Target calendar year

        Returns:
            The stored aggregate, or None if absent or unreadable
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload FROM aggregates WHERE user_id = ? AND year = ?",
                (user_id, year)
            ).fetchone()
        if row is None:
            return None
        return self._decode(user_id, row[0])

    def save(self, aggregate: UserAggregate) -> None:
        """Insert or replace a user's aggregate in a single transaction.

        Args:
            aggregate: Aggregate to persist
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """INSERT OR REPLACE INTO aggregates
                   (user_id, year, payload, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (
                    aggregate.user_id,
                    aggregate.year,
                    aggregate.model_dump_json(),
                    datetime.now(timezone.utc).isoformat(),
                )
            )
            conn.commit()
        logger.debug("%s: aggregate saved (%d tracks, watermark %d)",
                     aggregate.user_id, len(aggregate.tracks), aggregate.watermark)

    def load_all(self, year: Optional[int] = None) -> List[UserAggregate]:
        """Load every stored aggregate, optionally only for one year.

        Unreadable rows are logged and skipped.
        """
        with sqlite3.connect(self.db_path) as conn:
            if year is None:
                rows = conn.execute(
                    "SELECT user_id, payload FROM aggregates ORDER BY user_id, year"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT user_id, payload FROM aggregates WHERE year = ? ORDER BY user_id",
                    (year,)
                ).fetchall()

        aggregates = []
        for user_id, payload in rows:
            aggregate = self._decode(user_id, payload)
            if aggregate is not None:
                aggregates.append(aggregate)
        return aggregates

    def delete(self, user_id: str, year: int) -> bool:
        """Remove a user's aggregate. Maintenance only.

        Returns:
            True if a row was deleted
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM aggregates WHERE user_id = ? AND year = ?",
                                  (user_id, year))
            conn.commit()
            return cursor.rowcount > 0

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM aggregates").fetchone()[0]
