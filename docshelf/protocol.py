"""
Protocol definitions for the stores the coordinator orchestrates.

Defines interface contracts for the three independent backing services:
- ContentStoreProtocol: raw document bytes keyed by path
- MetadataStoreProtocol: document and tag records in two logical tables
- TextIndexProtocol: keyword search returning document paths

Implemented locally by LocalFileStore, SQLiteMetadataStore and
SQLiteTextIndex. External backends provide their own implementations
(see ``docshelf.backend``).

Every method takes an OpContext first and must call ``ctx.check()``
before doing work. Missing keys raise ``docshelf.errors.NotFound``;
native failures are wrapped in ``docshelf.errors.StoreFailure``.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from .context import OpContext


@runtime_checkable
class ContentStoreProtocol(Protocol):
    """
    Durable key -> bytes storage keyed by document path.

    Implemented by:
    - LocalFileStore (filesystem)
    """

    def read_file(self, ctx: OpContext, path: str) -> bytes: ...

    def write_file(self, ctx: OpContext, path: str, data: bytes) -> None: ...

    def remove_file(self, ctx: OpContext, path: str) -> None: ...

    def list_paths(self, ctx: OpContext) -> list[str]: ...

    def close(self) -> None: ...


@runtime_checkable
class MetadataStoreProtocol(Protocol):
    """
    Structured record storage with per-key atomicity.

    Records are plain dicts. ``put_item`` with ``expected_version`` is a
    conditional write: it succeeds only if the stored record's ``version``
    field equals ``expected_version`` (an absent record counts as version
    0), otherwise it raises ConditionFailed.

    Implemented by:
    - SQLiteMetadataStore (local SQLite)
    """

    def get_item(
        self, ctx: OpContext, table: str, key_name: str, key_value: str,
    ) -> dict[str, Any]: ...

    def put_item(
        self,
        ctx: OpContext,
        table: str,
        record: dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None: ...

    def delete_item(
        self, ctx: OpContext, table: str, key_name: str, key_value: str,
    ) -> None: ...

    def scan(self, ctx: OpContext, table: str) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...


@runtime_checkable
class TextIndexProtocol(Protocol):
    """
    Keyword search over document content.

    Only ``search`` is used by the coordinator. The write side
    (``index``/``remove``) is fed by the Shelf facade after successful
    writes.

    Implemented by:
    - SQLiteTextIndex (SQLite FTS5)
    """

    def search(self, ctx: OpContext, query: str) -> list[str]: ...

    def index(self, ctx: OpContext, path: str, content: str) -> None: ...

    def remove(self, ctx: OpContext, path: str) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class OrphanLedgerProtocol(Protocol):
    """Record of resources left behind by partially failed operations."""

    def flag(self, path: str, kind: str, error: str = "") -> None: ...

    def resolve(self, path: str, kind: Optional[str] = None) -> int: ...

    def entries(self, status: str = "open") -> list: ...

    def count(self) -> int: ...

    def close(self) -> None: ...
