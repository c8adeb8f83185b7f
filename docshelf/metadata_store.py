"""
Metadata store using SQLite.

Holds document records and tag records as JSON, one row per
(table, key). This is the structured key-value service the coordinator
treats as its metadata store: per-key atomic reads, writes and deletes,
plus conditional writes keyed on a record ``version`` field.

Content never lands here. Document records are rejected if they carry
a ``content`` field.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from .context import OpContext
from .errors import ConditionFailed, InvalidArgument, NotFound, StoreFailure
from .types import DOC_KEY, DOC_TABLE, TAG_KEY, TAG_TABLE

logger = logging.getLogger(__name__)

DEFAULT_KEYS = {DOC_TABLE: DOC_KEY, TAG_TABLE: TAG_KEY}

# Singular names used in NotFound errors
_KIND = {DOC_TABLE: "document", TAG_TABLE: "tag"}


class SQLiteMetadataStore:
    """
    SQLite-backed store for document and tag records.

    Uses WAL mode and manual transactions so conditional writes are a
    single read-check-write under BEGIN IMMEDIATE.
    """

    def __init__(self, db_path: Path, keys: Optional[dict[str, str]] = None):
        """
        Args:
            db_path: Path to SQLite database file
            keys: Mapping of table name to key field name
        """
        self._db_path = Path(db_path)
        self._keys = dict(keys or DEFAULT_KEYS)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None gives us manual transaction control
        self._conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                tbl TEXT NOT NULL,
                key TEXT NOT NULL,
                record_json TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (tbl, key)
            )
        """)

    def _key_for(self, table: str, key_name: str) -> None:
        expected = self._keys.get(table)
        if expected is None:
            raise InvalidArgument(f"unknown table: {table!r}")
        if key_name != expected:
            raise InvalidArgument(f"table {table!r} is keyed by {expected!r}, not {key_name!r}")

    # -------------------------------------------------------------------------
    # Item Operations
    # -------------------------------------------------------------------------

    def get_item(
        self, ctx: OpContext, table: str, key_name: str, key_value: str,
    ) -> dict[str, Any]:
        """
        Fetch one record.

        Raises:
            NotFound: No record with that key
            StoreFailure: SQLite error
        """
        ctx.check()
        self._key_for(table, key_name)
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT record_json FROM items WHERE tbl = ? AND key = ?",
                    (table, key_value),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreFailure("metadata", "get_item", str(e)) from e
        if row is None:
            raise NotFound(_KIND.get(table, table), key_value)
        return json.loads(row["record_json"])

    def put_item(
        self,
        ctx: OpContext,
        table: str,
        record: dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Insert or replace a record.

        Args:
            table: Logical table name
            record: Record to store; must contain the table's key field
            expected_version: If given, only write when the stored version
                matches (absent record = 0)

        Raises:
            ConditionFailed: expected_version did not match
            StoreFailure: SQLite error
        """
        ctx.check()
        key_name = self._keys.get(table)
        if key_name is None:
            raise InvalidArgument(f"unknown table: {table!r}")
        key_value = record.get(key_name)
        if not key_value:
            raise InvalidArgument(f"record for {table!r} has no {key_name!r}")
        if table == DOC_TABLE and record.get("content"):
            raise InvalidArgument("document records must not carry content")

        record_json = json.dumps(record, ensure_ascii=False)
        version = int(record.get("version", 0))
        try:
            with self._lock:
                self._conn.execute("BEGIN IMMEDIATE")
                try:
                    if expected_version is not None:
                        row = self._conn.execute(
                            "SELECT version FROM items WHERE tbl = ? AND key = ?",
                            (table, key_value),
                        ).fetchone()
                        current = row["version"] if row is not None else 0
                        if current != expected_version:
                            self._conn.execute("ROLLBACK")
                            raise ConditionFailed(table, key_value, expected_version)
                    self._conn.execute("""
                        INSERT OR REPLACE INTO items (tbl, key, record_json, version)
                        VALUES (?, ?, ?, ?)
                    """, (table, key_value, record_json, version))
                    self._conn.execute("COMMIT")
                except sqlite3.Error:
                    self._conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise StoreFailure("metadata", "put_item", str(e)) from e

    def delete_item(
        self, ctx: OpContext, table: str, key_name: str, key_value: str,
    ) -> None:
        """Delete a record. Deleting an absent key is not an error."""
        ctx.check()
        self._key_for(table, key_name)
        try:
            with self._lock:
                self._conn.execute(
                    "DELETE FROM items WHERE tbl = ? AND key = ?",
                    (table, key_value),
                )
        except sqlite3.Error as e:
            raise StoreFailure("metadata", "delete_item", str(e)) from e

    def scan(self, ctx: OpContext, table: str) -> list[dict[str, Any]]:
        """Every record in a table, ordered by key."""
        ctx.check()
        if table not in self._keys:
            raise InvalidArgument(f"unknown table: {table!r}")
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT record_json FROM items WHERE tbl = ? ORDER BY key",
                    (table,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreFailure("metadata", "scan", str(e)) from e
        return [json.loads(row["record_json"]) for row in rows]

    def count(self, table: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM items WHERE tbl = ?", (table,),
            ).fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
