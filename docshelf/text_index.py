"""
Text index using SQLite FTS5.

Maps free-text queries to matching document paths. The coordinator only
reads from it; the Shelf facade feeds it after successful writes and
``reindex`` rebuilds it from the content store.

If the SQLite build lacks FTS5, a plain table with LIKE matching is used
instead.
"""

import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .context import OpContext
from .errors import StoreFailure

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def query_terms(query: str) -> list[str]:
    """Split a free-text query into search terms (punctuation dropped)."""
    return _TOKEN_RE.findall(query)


class SQLiteTextIndex:
    """
    Keyword index over document content.

    All terms of a query must match (implicit AND). Results are ordered
    by FTS5 rank, best first.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._fts5_available = False
        self._init_db()

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        try:
            self._conn.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS docs_fts USING fts5(
                    path UNINDEXED,
                    content,
                    tokenize='unicode61 remove_diacritics 2'
                )
            """)
            self._fts5_available = True
        except sqlite3.OperationalError as e:
            logger.info("FTS5 not available, falling back to LIKE search: %s", e)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS docs_plain (
                    path TEXT PRIMARY KEY,
                    content TEXT NOT NULL
                )
            """)
        self._conn.commit()

    @property
    def fts5_available(self) -> bool:
        return self._fts5_available

    def search(self, ctx: OpContext, query: str) -> list[str]:
        """
        Paths of documents matching every term of ``query``.

        An empty list means "no matches". A query with no usable terms
        matches nothing.
        """
        ctx.check()
        terms = query_terms(query)
        if not terms:
            return []
        try:
            with self._lock:
                if self._fts5_available:
                    match = " ".join('"' + t.replace('"', '""') + '"' for t in terms)
                    rows = self._conn.execute(
                        "SELECT path FROM docs_fts WHERE docs_fts MATCH ? ORDER BY rank",
                        (match,),
                    ).fetchall()
                else:
                    clauses = " AND ".join("content LIKE ?" for _ in terms)
                    rows = self._conn.execute(
                        f"SELECT path FROM docs_plain WHERE {clauses} ORDER BY path",
                        [f"%{t}%" for t in terms],
                    ).fetchall()
        except sqlite3.Error as e:
            raise StoreFailure("text index", "search", str(e)) from e
        return [row[0] for row in rows]

    def index(self, ctx: OpContext, path: str, content: str) -> None:
        """Add or replace the indexed content for a path."""
        ctx.check()
        try:
            with self._lock:
                if self._fts5_available:
                    self._conn.execute("DELETE FROM docs_fts WHERE path = ?", (path,))
                    self._conn.execute(
                        "INSERT INTO docs_fts (path, content) VALUES (?, ?)",
                        (path, content),
                    )
                else:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO docs_plain (path, content) VALUES (?, ?)",
                        (path, content),
                    )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreFailure("text index", "index", str(e)) from e

    def remove(self, ctx: OpContext, path: str) -> None:
        ctx.check()
        table = "docs_fts" if self._fts5_available else "docs_plain"
        try:
            with self._lock:
                self._conn.execute(f"DELETE FROM {table} WHERE path = ?", (path,))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreFailure("text index", "remove", str(e)) from e

    def clear(self) -> None:
        """Drop every indexed document (used before a full reindex)."""
        table = "docs_fts" if self._fts5_available else "docs_plain"
        with self._lock:
            self._conn.execute(f"DELETE FROM {table}")
            self._conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
