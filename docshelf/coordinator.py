"""
Multi-store document coordination.

Keeps document content (content store), document and tag records
(metadata store) and keyword search (text index) consistent without any
cross-store transaction:

- put_doc: write content, then metadata; undo the content write if the
  metadata write fails
- remove_doc: remove content, then metadata; never leave metadata gone
  while content is still present
- tag_doc: idempotent per tag, not atomic across tags
- list_docs: text search and tag intersection combined

Partial failures that cannot be compensated are raised as
RollbackFailure / OrphanedMetadata and recorded in the orphan ledger.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .context import OpContext
from .errors import (
    Cancelled,
    DocshelfError,
    InvalidArgument,
    NotFound,
    OrphanedMetadata,
    RollbackFailure,
    StoreFailure,
    store_call,
)
from .orphans import ORPHANED_BLOB, ORPHANED_METADATA, NullOrphanLedger
from .protocol import (
    ContentStoreProtocol,
    MetadataStoreProtocol,
    OrphanLedgerProtocol,
    TextIndexProtocol,
)
from .query import QueryEngine
from .tags import DEFAULT_RETRY_LIMIT, TagIndex
from .types import (
    DOC_KEY,
    DOC_TABLE,
    Document,
    unique,
    utc_now,
    validate_path,
    validate_tag_name,
)

logger = logging.getLogger(__name__)


class PutState(Enum):
    PENDING = "pending"
    CONTENT_WRITTEN = "content-written"
    METADATA_WRITTEN = "metadata-written"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"


class RemoveState(Enum):
    PENDING = "pending"
    CONTENT_REMOVED = "content-removed"
    REMOVED = "removed"
    FAILED = "failed"


@dataclass
class Saga:
    """Progress of one multi-store write. ``error`` is set when it failed."""
    path: str
    state: Enum
    error: Optional[BaseException] = None
    history: list = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    def advance(self, state: Enum) -> None:
        logger.debug("%s: %s -> %s", self.path, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def ok(self) -> bool:
        return self.error is None


class DocumentCoordinator:
    """
    Stateless orchestrator over a content store, a metadata store and a
    text index.

    Safe for concurrent use: every call works only through the injected
    stores, which provide per-key atomicity. Concurrent writers to the
    same path are last-writer-wins per store.

    Example:
        coord = DocumentCoordinator(files, metadata, search)
        ctx = OpContext.with_timeout(5)
        coord.put_doc(ctx, Document(path="notes/a.md", content="hello"))
        coord.tag_doc(ctx, "notes/a.md", "inbox")
        coord.list_docs(ctx, "hello", "inbox")
    """

    def __init__(
        self,
        content_store: ContentStoreProtocol,
        metadata_store: MetadataStoreProtocol,
        text_index: TextIndexProtocol,
        *,
        orphans: Optional[OrphanLedgerProtocol] = None,
        tag_retry_limit: int = DEFAULT_RETRY_LIMIT,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        """
        Args:
            content_store: Blob storage for document content
            metadata_store: Record storage for documents and tags
            text_index: Keyword search over content
            orphans: Ledger for resources left behind by failed
                compensations (default: no-op)
            tag_retry_limit: Conditional tag writes attempted before
                giving up on a contended tag
            clock: Timestamp source (UTC strings)
        """
        self._content = content_store
        self._metadata = metadata_store
        self._text_index = text_index
        self._orphans = orphans or NullOrphanLedger()
        self._clock = clock
        self._tags = TagIndex(metadata_store, retry_limit=tag_retry_limit)
        self._query = QueryEngine(text_index, self._tags)

    @property
    def tags(self) -> TagIndex:
        return self._tags

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_doc_meta(self, ctx: OpContext, path: str) -> Document:
        """
        Fetch a document's metadata record without its content.

        Raises:
            NotFound: No document record for ``path``
        """
        record = store_call(
            "metadata", "get_item",
            self._metadata.get_item, ctx, DOC_TABLE, DOC_KEY, path,
        )
        return Document.from_record(record)

    def get_doc(self, ctx: OpContext, path: str) -> Document:
        """
        Fetch a document with its content attached.

        A record whose content blob is missing is a consistency fault:
        the content store's NotFound (kind ``content``) is raised rather
        than returning empty content.

        Raises:
            InvalidArgument: Empty or malformed path
            NotFound: No document record (kind ``document``) or no blob
                (kind ``content``)
            StoreFailure: The blob could not be read or is not UTF-8 text
        """
        validate_path(path)
        doc = self.get_doc_meta(ctx, path)
        try:
            data = store_call("content", "read_file", self._content.read_file, ctx, path)
        except NotFound:
            logger.error("Document %s has a metadata record but no content", path)
            raise
        try:
            doc.content = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreFailure("content", "read_file", f"content of {path!r} is not valid UTF-8: {e}") from e
        return doc

    def list_docs(self, ctx: OpContext, query: str = "", *tags: str) -> list[Document]:
        """
        List documents matching a text query and/or carrying every tag.

        Documents come back without content. Paths listed by the text
        index or by tag records whose document no longer exists are
        skipped (stale references left by deletes).

        Args:
            query: Free text; empty means no text filter
            *tags: Tag names; a document must carry all of them

        Returns:
            Matching documents. Unknown tags give an empty list.
        """
        paths = self._query.resolve(ctx, query, tags)
        if paths is None:
            records = store_call("metadata", "scan", self._metadata.scan, ctx, DOC_TABLE)
            return [Document.from_record(r) for r in records]

        docs = []
        for path in paths:
            try:
                docs.append(self.get_doc_meta(ctx, path))
            except NotFound:
                logger.debug("Skipping stale reference to %s", path)
        return docs

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put_doc(self, ctx: OpContext, doc: Document) -> Document:
        """
        Create or update a document.

        Content goes to the content store first, then the metadata record
        (without content). If the metadata write fails, the content write
        is undone.

        Returns:
            The stored document, content attached

        Raises:
            InvalidArgument: Empty or malformed path
            StoreFailure: A store failed; if content had been written it
                was rolled back
            RollbackFailure: The metadata write failed and the content
                could not be removed again (orphaned blob, flagged)
        """
        saga, stored = self.run_put(ctx, doc)
        if saga.error is not None:
            raise saga.error
        return stored

    def run_put(self, ctx: OpContext, doc: Document) -> tuple[Saga, Optional[Document]]:
        """
        Run the put sequence and report how far it got.

        Unlike put_doc, store failures are returned on the saga instead
        of raised. Argument errors and failures of the existence check
        still raise, since nothing has been written at that point.

        Returns:
            (saga, stored document or None)
        """
        if not doc.path:
            raise InvalidArgument("can not create a document without a path")
        validate_path(doc.path)
        path = doc.path

        now = self._clock()
        try:
            existing = self.get_doc_meta(ctx, path)
            created_at = existing.created_at or now
        except NotFound:
            created_at = now

        saga = Saga(path=path, state=PutState.PENDING)
        data = (doc.content or "").encode("utf-8")

        try:
            store_call("content", "write_file", self._content.write_file, ctx, path, data)
        except DocshelfError as e:
            logger.warning("Content write failed for %s: %s", path, e)
            saga.error = e
            return saga, None
        saga.advance(PutState.CONTENT_WRITTEN)

        stored = Document(
            path=path,
            content=None,
            created_at=created_at,
            updated_at=now,
            meta=dict(doc.meta),
        )
        try:
            store_call(
                "metadata", "put_item",
                self._metadata.put_item, ctx, DOC_TABLE, stored.to_record(),
            )
        except DocshelfError as e:
            saga.error = self._rollback_content(ctx, saga, e)
            return saga, None

        saga.advance(PutState.METADATA_WRITTEN)
        stored.content = doc.content or ""
        logger.info("Stored %s (%d bytes)", path, len(data))
        return saga, stored

    def _rollback_content(
        self, ctx: OpContext, saga: Saga, original: DocshelfError,
    ) -> DocshelfError:
        """Undo a content write after a failed metadata write.

        Runs under a detached context so a cancelled or expired caller
        does not abandon the rollback. Returns the error to report.
        """
        path = saga.path
        rctx = ctx.detached()
        try:
            store_call("content", "remove_file", self._content.remove_file, rctx, path)
        except NotFound:
            logger.warning("Rollback of %s: content already gone", path)
        except DocshelfError as rollback_error:
            saga.advance(PutState.ROLLBACK_FAILED)
            logger.error(
                "Rollback failed for %s, orphaned content blob: %s", path, rollback_error,
            )
            self._flag(path, ORPHANED_BLOB, f"{original}; rollback: {rollback_error}")
            failure = RollbackFailure(path, original, rollback_error)
            failure.__cause__ = rollback_error
            return failure

        saga.advance(PutState.ROLLED_BACK)
        logger.warning("Metadata write failed for %s, content rolled back: %s", path, original)
        if isinstance(original, Cancelled):
            failure = Cancelled(f"{original} (content rolled back)")
        else:
            failure = StoreFailure("metadata", "put_item", f"{original} (content rolled back)")
        failure.__cause__ = original
        return failure

    def tag_doc(self, ctx: OpContext, path: str, *tags: str) -> None:
        """
        Tag a document.

        Each tag is handled on its own: already-present paths are left
        alone, otherwise the path is appended to the tag record. The first
        failure is raised immediately; tags processed before it stay
        committed.

        Raises:
            InvalidArgument: Empty path or tag name
            StoreFailure: A tag record could not be read or written
        """
        validate_path(path)
        names = unique(tags)
        for name in names:
            validate_tag_name(name)

        for name in names:
            if self._tags.add_path(ctx, name, path):
                logger.info("Tagged %s with %r", path, name)
            else:
                logger.debug("%s already tagged %r", path, name)

    def remove_doc(self, ctx: OpContext, path: str) -> None:
        """
        Delete a document's content and metadata record.

        Content goes first. If that fails the record is left in place,
        so a document is never visible as metadata-only while its
        content still exists. Tag records are not touched.

        Raises:
            NotFound: Neither content nor record exists
            StoreFailure: Content removal failed (nothing changed)
            OrphanedMetadata: Content was removed but the record was not
                (flagged for reconciliation)
        """
        validate_path(path)
        saga = Saga(path=path, state=RemoveState.PENDING)
        try:
            store_call("content", "remove_file", self._content.remove_file, ctx, path)
        except NotFound:
            # Already orphaned metadata (or nothing at all): clean up the record
            self.get_doc_meta(ctx, path)
            logger.warning("Removing %s: content was already missing", path)
        except DocshelfError:
            saga.advance(RemoveState.FAILED)
            raise
        saga.advance(RemoveState.CONTENT_REMOVED)

        try:
            store_call(
                "metadata", "delete_item",
                self._metadata.delete_item, ctx, DOC_TABLE, DOC_KEY, path,
            )
        except DocshelfError as e:
            saga.advance(RemoveState.FAILED)
            logger.error("Content for %s removed but metadata delete failed: %s", path, e)
            self._flag(path, ORPHANED_METADATA, str(e))
            raise OrphanedMetadata(path, f"content removed, record kept: {e}") from e

        saga.advance(RemoveState.REMOVED)
        self._resolve(path)
        logger.info("Removed %s", path)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def reconcile(self, ctx: OpContext, fix: bool = False) -> dict:
        """
        Check and optionally repair consistency between the stores.

        Detects:
        - Document records whose content blob is missing
        - Content blobs with no document record
        - Tag records listing paths that have no document record

        With ``fix``: drops records without content, removes unreferenced
        blobs, prunes stale tag paths and resolves matching ledger entries.
        Run it while no writers are active: a put in flight looks like an
        unreferenced blob until its metadata write lands.

        Returns:
            Dict with the findings and the repair counts
        """
        records = store_call("metadata", "scan", self._metadata.scan, ctx, DOC_TABLE)
        doc_paths = [r["path"] for r in records]
        content_paths = set(
            store_call("content", "list_paths", self._content.list_paths, ctx)
        )
        missing_content = [p for p in doc_paths if p not in content_paths]
        doc_path_set = set(doc_paths)
        orphaned_blobs = sorted(p for p in content_paths if p not in doc_path_set)

        fixed_documents = 0
        removed_blobs = 0
        if fix:
            for path in missing_content:
                try:
                    store_call(
                        "metadata", "delete_item",
                        self._metadata.delete_item, ctx, DOC_TABLE, DOC_KEY, path,
                    )
                    doc_path_set.discard(path)
                    self._resolve(path, ORPHANED_METADATA)
                    fixed_documents += 1
                    logger.info("Reconciled: dropped record without content %s", path)
                except StoreFailure as e:
                    logger.warning("Failed to drop record %s: %s", path, e)
            for path in orphaned_blobs:
                try:
                    store_call("content", "remove_file", self._content.remove_file, ctx, path)
                except NotFound:
                    pass
                except StoreFailure as e:
                    logger.warning("Failed to remove orphaned blob %s: %s", path, e)
                    continue
                self._resolve(path, ORPHANED_BLOB)
                removed_blobs += 1
                logger.info("Reconciled: removed orphaned blob %s", path)

        stale_tag_paths: dict[str, list[str]] = {}
        pruned = 0
        for tag in self._tags.all(ctx):
            stale = [p for p in tag.paths if p not in doc_path_set]
            if not stale:
                continue
            stale_tag_paths[tag.name] = stale
            if fix:
                try:
                    pruned += self._tags.remove_paths(ctx, tag.name, stale)
                except StoreFailure as e:
                    logger.warning("Failed to prune tag %r: %s", tag.name, e)

        return {
            "missing_content": missing_content,
            "orphaned_blobs": orphaned_blobs,
            "stale_tag_paths": stale_tag_paths,
            "fixed_documents": fixed_documents,
            "removed_blobs": removed_blobs,
            "pruned_tag_paths": pruned,
        }

    def _flag(self, path: str, kind: str, error: str) -> None:
        """Record an orphan; a ledger failure must not mask the real error."""
        try:
            self._orphans.flag(path, kind, error)
        except Exception as e:
            logger.error("Could not flag %s for %s: %s", kind, path, e)

    def _resolve(self, path: str, kind: Optional[str] = None) -> None:
        try:
            self._orphans.resolve(path, kind)
        except Exception as e:
            logger.warning("Could not resolve ledger entries for %s: %s", path, e)
