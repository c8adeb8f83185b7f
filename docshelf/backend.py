"""
Backend selection.

A store is backed by four pieces: content store, metadata store, text
index and orphan ledger. ``backend = "local"`` keeps all of them inside
the store directory (files plus SQLite databases). Any other name is
looked up in the ``docshelf.backends`` entry point group, e.g.::

    [project.entry-points."docshelf.backends"]
    s3-dynamo = "docshelf_aws.backend:create_stores"

where ``create_stores(config: StoreConfig) -> StoreBundle``.
"""

import logging
from typing import NamedTuple

from .config import StoreConfig
from .protocol import (
    ContentStoreProtocol,
    MetadataStoreProtocol,
    OrphanLedgerProtocol,
    TextIndexProtocol,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "docshelf.backends"


class StoreBundle(NamedTuple):
    """The stores a Shelf runs on."""
    content_store: ContentStoreProtocol
    metadata_store: MetadataStoreProtocol
    text_index: TextIndexProtocol
    orphans: OrphanLedgerProtocol
    is_local: bool

    def close(self) -> None:
        """Close every store, search index first and content last."""
        for store in (self.text_index, self.orphans, self.metadata_store, self.content_store):
            try:
                store.close()
            except Exception as e:
                logger.warning("Error closing %s: %s", type(store).__name__, e)


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Build the store bundle named by ``config.backend``.

    Raises:
        ValueError: No backend registered under that name
    """
    if config.backend == "local":
        return local_stores(config)

    from importlib.metadata import entry_points

    registered = {ep.name: ep for ep in entry_points(group=ENTRY_POINT_GROUP)}
    if config.backend not in registered:
        choices = ", ".join(sorted(registered)) or f"none installed in {ENTRY_POINT_GROUP!r}"
        raise ValueError(f"Unknown backend {config.backend!r} (available: {choices})")

    factory = registered[config.backend].load()
    logger.debug("Using backend %r from %s", config.backend, registered[config.backend].value)
    return factory(config)


def local_stores(config: StoreConfig) -> StoreBundle:
    """Filesystem content store plus SQLite metadata, search and ledger."""
    from .file_store import LocalFileStore
    from .metadata_store import SQLiteMetadataStore
    from .orphans import OrphanLedger
    from .text_index import SQLiteTextIndex

    return StoreBundle(
        content_store=LocalFileStore(config.content_path),
        metadata_store=SQLiteMetadataStore(config.metadata_path),
        text_index=SQLiteTextIndex(config.search_path),
        orphans=OrphanLedger(config.orphans_path),
        is_local=True,
    )
