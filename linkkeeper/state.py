"""Persistent hyperlink storage."""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import closing
from pathlib import Path
from typing import List, Optional

from .models import SavedLink

logger = logging.getLogger(__name__)

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS hyperlinks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL
);
"""


class StoreError(RuntimeError):
    """Raised when the link store cannot complete a query."""


class LinkStore:
    """SQLite-backed list of saved hyperlinks."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly where needed.
        return sqlite3.connect(self._db_path, timeout=10, isolation_level=None)

    def _ensure_schema(self) -> None:
        try:
            with closing(self._connect()) as conn:
                conn.executescript(_DB_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreError(f"failed to create schema: {exc}") from exc

    def append(self, url: str) -> SavedLink:
        try:
            with closing(self._connect()) as conn:
                cursor = conn.execute("INSERT INTO hyperlinks (url) VALUES (?)", (url,))
                link_id = cursor.lastrowid
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        logger.debug("Stored link %s as id %s", url, link_id)
        return SavedLink(id=int(link_id), url=url)

    def pick_random_and_remove(self) -> Optional[SavedLink]:
        """Remove and return one uniformly chosen link, or ``None`` if empty.

        Selection and deletion share a single ``BEGIN IMMEDIATE`` transaction,
        so concurrent pickers (in this process or another) never receive the
        same row.
        """

        with self._lock:
            try:
                with closing(self._connect()) as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        row = conn.execute(
                            "SELECT id, url FROM hyperlinks ORDER BY RANDOM() LIMIT 1"
                        ).fetchone()
                        if row is None:
                            conn.execute("COMMIT")
                            return None
                        conn.execute("DELETE FROM hyperlinks WHERE id = ?", (row[0],))
                        conn.execute("COMMIT")
                    except sqlite3.Error:
                        conn.execute("ROLLBACK")
                        raise
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc
        return SavedLink(id=int(row[0]), url=row[1])

    def list_all(self) -> List[str]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute("SELECT url FROM hyperlinks").fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [row[0] for row in rows]

    def count(self) -> int:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT COUNT(*) FROM hyperlinks").fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return int(row[0])


__all__ = ["LinkStore", "StoreError"]
