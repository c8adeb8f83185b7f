"""
docshelf: documents with content, metadata and tags kept in step across
independent stores.

Quick start:
    from docshelf import Shelf

    with Shelf("~/.docshelf") as shelf:
        shelf.put("notes/todo.md", "buy milk", tags=["home"])
        shelf.list("milk", tags=["home"])
"""

from .api import Shelf
from .context import OpContext
from .coordinator import DocumentCoordinator, PutState, RemoveState, Saga
from .errors import (
    Cancelled,
    ConditionFailed,
    DocshelfError,
    InvalidArgument,
    NotFound,
    OrphanedMetadata,
    RollbackFailure,
    StoreFailure,
)
from .types import Document, Tag

__version__ = "0.1.0"

__all__ = [
    "Shelf",
    "DocumentCoordinator",
    "OpContext",
    "Document",
    "Tag",
    "Saga",
    "PutState",
    "RemoveState",
    "DocshelfError",
    "InvalidArgument",
    "NotFound",
    "StoreFailure",
    "ConditionFailed",
    "RollbackFailure",
    "OrphanedMetadata",
    "Cancelled",
]
