"""
Core API for docshelf.

Shelf wires configuration, storage backends and the document
coordinator together:
- put(): store content + metadata, then index the content for search
- get(): document with content
- list(): text query and/or tag filter
- tag() / remove() / reconcile()
"""

import logging
from pathlib import Path
from typing import Any, Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .context import OpContext
from .coordinator import DocumentCoordinator
from .errors import DocshelfError, NotFound, StoreFailure, store_call
from .types import Document

logger = logging.getLogger(__name__)


class Shelf:
    """
    Document shelf: content, metadata and tags kept in step across stores.

    Example:
        with Shelf("/tmp/shelf") as shelf:
            shelf.put("notes/todo.md", "buy milk", tags=["home"])
            docs = shelf.list("milk", tags=["home"])
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        bundle=None,
        ops_log: bool = True,
    ) -> None:
        """
        Initialize or open an existing store.

        Args:
            store_path: Path to store directory. Uses default if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            bundle: Injected StoreBundle (skips default backend creation).
            ops_log: Write the persistent operations log in the store directory.
        """
        # --- Config resolution ---
        if config is not None:
            self._config: StoreConfig = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        # --- Persistent operations log ---
        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path, self._config.log_level)

        # --- Storage backends (injected or factory-created) ---
        if bundle is None:
            from .backend import create_stores
            bundle = create_stores(self._config)
        self._bundle = bundle

        self._coordinator = DocumentCoordinator(
            bundle.content_store,
            bundle.metadata_store,
            bundle.text_index,
            orphans=bundle.orphans,
            tag_retry_limit=self._config.tag_retry_limit,
        )

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def coordinator(self) -> DocumentCoordinator:
        return self._coordinator

    def _ctx(self, timeout: Optional[float]) -> OpContext:
        if timeout is None:
            timeout = self._config.default_timeout
        return OpContext.with_timeout(timeout)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def get(self, path: str, *, timeout: Optional[float] = None) -> Document:
        return self._coordinator.get_doc(self._ctx(timeout), path)

    def put(
        self,
        path: str,
        content: str,
        *,
        tags: Optional[list[str]] = None,
        meta: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Document:
        """
        Store a document, tag it, and index its content.

        Indexing happens after the document is committed. If it fails the
        document stays stored; the error is logged and the document is
        findable by path and tags until the next ``reindex``. A tagging
        failure is raised, but only after the committed document is indexed.
        """
        ctx = self._ctx(timeout)
        doc = self._coordinator.put_doc(ctx, Document(path=path, content=content, meta=meta or {}))
        try:
            if tags:
                self._coordinator.tag_doc(ctx, path, *tags)
        finally:
            # The document is committed; keep it searchable even if tagging failed
            self._index(ctx.detached(), path, content)
        return doc

    def tag(self, path: str, *tags: str, timeout: Optional[float] = None) -> None:
        self._coordinator.tag_doc(self._ctx(timeout), path, *tags)

    def remove(self, path: str, *, timeout: Optional[float] = None) -> None:
        ctx = self._ctx(timeout)
        self._coordinator.remove_doc(ctx, path)
        try:
            store_call("text index", "remove", self._bundle.text_index.remove, ctx.detached(), path)
        except DocshelfError as e:
            logger.warning("Search index still lists removed %s: %s", path, e)

    def list(
        self,
        query: str = "",
        *,
        tags: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ) -> list[Document]:
        return self._coordinator.list_docs(self._ctx(timeout), query, *(tags or []))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def reconcile(self, fix: bool = False, *, timeout: Optional[float] = None) -> dict:
        return self._coordinator.reconcile(self._ctx(timeout), fix=fix)

    def orphans(self, status: str = "open"):
        return self._bundle.orphans.entries(status)

    def reindex(self, *, timeout: Optional[float] = None) -> int:
        """
        Rebuild the text index from stored content.

        Returns:
            Number of documents indexed
        """
        ctx = self._ctx(timeout)
        text_index = self._bundle.text_index
        if hasattr(text_index, "clear"):
            text_index.clear()
        indexed = 0
        for doc in self._coordinator.list_docs(ctx):
            try:
                full = self._coordinator.get_doc(ctx, doc.path)
            except (NotFound, StoreFailure) as e:
                logger.warning("Skipping %s during reindex: %s", doc.path, e)
                continue
            if self._index(ctx, doc.path, full.content or ""):
                indexed += 1
        logger.info("Reindexed %d documents", indexed)
        return indexed

    def _index(self, ctx: OpContext, path: str, content: str) -> bool:
        try:
            store_call("text index", "index", self._bundle.text_index.index, ctx, path, content)
        except DocshelfError as e:
            logger.warning("Failed to index %s for search: %s", path, e)
            return False
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close stores and detach the operations log."""
        if getattr(self, "_bundle", None) is not None:
            self._bundle.close()
            self._bundle = None

        if getattr(self, "_ops_log_handler", None) is not None:
            logging.getLogger("docshelf").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
