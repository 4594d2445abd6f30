"""Relational tag cache backed by sqlite.

The table mirrors the service's ``twag_tags`` layout. Only ``id`` and
``last_seen_tap_count`` matter to tap resolution; the rest is bookkeeping.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path

from twag.ids import TagId
from twag.types import TagCacheEntry

SCHEMA = """
CREATE TABLE IF NOT EXISTS twag_tags (
    id                  CHAR(14) PRIMARY KEY NOT NULL
                        CHECK (length(id) = 14 AND id NOT GLOB '*[^0-9A-F]*'),
    target_url          TEXT NOT NULL,
    created_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    last_accessed       INTEGER,
    access_count        INTEGER DEFAULT 0,
    last_seen_tap_count INTEGER
)
"""

_UPSERT = """
INSERT INTO twag_tags (id, target_url, last_accessed, access_count, last_seen_tap_count)
VALUES (:id, :target_url, :last_accessed, :access_count, :last_seen_tap_count)
ON CONFLICT (id) DO UPDATE SET
    target_url = excluded.target_url,
    last_accessed = excluded.last_accessed,
    access_count = excluded.access_count,
    last_seen_tap_count = excluded.last_seen_tap_count,
    updated_at = CURRENT_TIMESTAMP
"""


def connect(db_path: Path | str) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def migrate(conn: sqlite3.Connection) -> None:
    """Create the schema. Safe to call every startup."""
    with conn:
        conn.execute(SCHEMA)


class AsyncSqliteCacheStore:
    """Async tag cache over a single sqlite connection.

    Queries run in a worker thread; a lock keeps them one at a time.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self._conn = connect(db_path)
        self._lock = threading.Lock()
        migrate(self._conn)

    def _get(self, tag: TagId) -> TagCacheEntry | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, target_url, last_accessed, access_count, last_seen_tap_count"
                " FROM twag_tags WHERE id = ?",
                (str(tag),),
            ).fetchone()
        if row is None:
            return None
        return TagCacheEntry(
            id=TagId(row["id"]),
            target_url=row["target_url"],
            last_accessed=row["last_accessed"],
            access_count=row["access_count"] or 0,
            last_seen_tap_count=row["last_seen_tap_count"],
        )

    def _upsert(self, entry: TagCacheEntry) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                _UPSERT,
                {
                    "id": str(entry.id),
                    "target_url": entry.target_url,
                    "last_accessed": entry.last_accessed,
                    "access_count": entry.access_count,
                    "last_seen_tap_count": entry.last_seen_tap_count,
                },
            )

    async def get(self, tag: TagId) -> TagCacheEntry | None:
        """Get the cache entry for a tag."""
        return await asyncio.to_thread(self._get, tag)

    async def upsert(self, entry: TagCacheEntry) -> None:
        """Create or replace the cache entry for ``entry.id``."""
        await asyncio.to_thread(self._upsert, entry)

    async def disconnect(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
