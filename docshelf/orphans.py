"""
Orphan ledger using SQLite.

Records resources left behind when a multi-store operation fails part
way and its compensating action cannot finish:

- ``orphaned-blob``: put_doc wrote content, the metadata write failed,
  and deleting the content again also failed.
- ``orphaned-metadata``: remove_doc deleted the content, but the
  metadata record could not be deleted.

Entries stay 'open' until ``reconcile(fix=True)`` or an operator resolves
them. Re-flagging an entry reopens it with the latest error.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .types import utc_now

logger = logging.getLogger(__name__)

ORPHANED_BLOB = "orphaned-blob"
ORPHANED_METADATA = "orphaned-metadata"


@dataclass
class OrphanEntry:
    """A flagged inconsistency awaiting reconciliation."""
    path: str
    kind: str
    error: str
    flagged_at: str
    status: str = "open"
    resolved_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "kind": self.kind,
            "error": self.error,
            "flagged_at": self.flagged_at,
            "status": self.status,
            "resolved_at": self.resolved_at,
        }


class OrphanLedger:
    """
    SQLite-backed ledger of orphaned blobs and records.
    """

    def __init__(self, ledger_path: Path):
        """
        Args:
            ledger_path: Path to SQLite database file
        """
        self._ledger_path = Path(ledger_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._ledger_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self._ledger_path), check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrent access across processes
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS orphans (
                path TEXT NOT NULL,
                kind TEXT NOT NULL,
                error TEXT NOT NULL DEFAULT '',
                flagged_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'open',
                resolved_at TEXT,
                PRIMARY KEY (path, kind)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orphans_status
            ON orphans(status)
        """)
        self._conn.commit()

    def flag(self, path: str, kind: str, error: str = "") -> None:
        """Record (or reopen) an orphan entry."""
        with self._lock:
            self._conn.execute("""
                INSERT INTO orphans (path, kind, error, flagged_at, status, resolved_at)
                VALUES (?, ?, ?, ?, 'open', NULL)
                ON CONFLICT(path, kind) DO UPDATE SET
                    error = excluded.error,
                    flagged_at = excluded.flagged_at,
                    status = 'open',
                    resolved_at = NULL
            """, (path, kind, error, utc_now()))
            self._conn.commit()
        logger.warning("Flagged %s for %s: %s", kind, path, error)

    def resolve(self, path: str, kind: Optional[str] = None) -> int:
        """
        Mark open entries for a path as resolved.

        Args:
            path: Document path
            kind: Only resolve entries of this kind (None = all kinds)

        Returns:
            Number of entries resolved
        """
        with self._lock:
            if kind is None:
                cursor = self._conn.execute("""
                    UPDATE orphans SET status = 'resolved', resolved_at = ?
                    WHERE path = ? AND status = 'open'
                """, (utc_now(), path))
            else:
                cursor = self._conn.execute("""
                    UPDATE orphans SET status = 'resolved', resolved_at = ?
                    WHERE path = ? AND kind = ? AND status = 'open'
                """, (utc_now(), path, kind))
            self._conn.commit()
        return cursor.rowcount

    def entries(self, status: str = "open") -> list[OrphanEntry]:
        """Entries with the given status, oldest first."""
        with self._lock:
            rows = self._conn.execute("""
                SELECT path, kind, error, flagged_at, status, resolved_at
                FROM orphans WHERE status = ?
                ORDER BY flagged_at
            """, (status,)).fetchall()
        return [OrphanEntry(**dict(row)) for row in rows]

    def count(self) -> int:
        """Count open entries."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM orphans WHERE status = 'open'"
            ).fetchone()
        return row[0]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class NullOrphanLedger:
    """No-op ledger for setups that track orphans elsewhere (or not at all)."""

    def flag(self, path: str, kind: str, error: str = "") -> None:
        pass

    def resolve(self, path: str, kind: Optional[str] = None) -> int:
        return 0

    def entries(self, status: str = "open") -> list:
        return []

    def count(self) -> int:
        return 0

    def close(self) -> None:
        pass
