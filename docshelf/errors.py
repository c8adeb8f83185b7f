"""
Error taxonomy for docshelf, plus error logging for the CLI.

Callers can tell "nothing there" (NotFound) from "something is broken"
(StoreFailure) from "we may have left inconsistent state" (RollbackFailure,
OrphanedMetadata). Native store errors are wrapped at the store boundary
and chained as ``__cause__``.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class DocshelfError(Exception):
    """Base class for every error raised by docshelf."""


class InvalidArgument(DocshelfError, ValueError):
    """A caller-supplied value is unusable (empty path, empty tag name, ...)."""


class NotFound(DocshelfError, LookupError):
    """A document, tag or content blob does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key!r}")


class Cancelled(DocshelfError):
    """The operation context was cancelled or its deadline passed."""


class StoreFailure(DocshelfError):
    """An underlying store operation failed.

    The store's native exception is available as ``__cause__``.
    """

    def __init__(self, store: str, operation: str, message: str = ""):
        self.store = store
        self.operation = operation
        detail = f": {message}" if message else ""
        super().__init__(f"{store} {operation} failed{detail}")


class ConditionFailed(StoreFailure):
    """A conditional write lost a race (version token no longer matches)."""

    def __init__(self, table: str, key: str, expected: Optional[int]):
        self.table = table
        self.key = key
        self.expected = expected
        super().__init__(
            "metadata", "put_item",
            f"{table}[{key!r}] changed since version {expected}",
        )


class OrphanedMetadata(StoreFailure):
    """Content was removed but the metadata record could not be deleted.

    The record now points at a blob that no longer exists. The path has
    been flagged for reconciliation.
    """

    def __init__(self, path: str, message: str = ""):
        self.path = path
        super().__init__("metadata", "delete_item", message or f"orphaned metadata for {path!r}")


class RollbackFailure(DocshelfError):
    """A compensating action after a partial write itself failed.

    Attributes:
        original: The failure that triggered the rollback
        rollback_error: The failure raised by the compensating action
        resource: Description of what is left behind (e.g. "content blob")
        path: Document path involved
    """

    def __init__(
        self,
        path: str,
        original: BaseException,
        rollback_error: BaseException,
        resource: str = "content blob",
    ):
        self.path = path
        self.original = original
        self.rollback_error = rollback_error
        self.resource = resource
        super().__init__(
            f"rollback failed for {path!r}, orphaned {resource} left behind "
            f"(original error: {original}; rollback error: {rollback_error})"
        )


def _error_log_path() -> Path:
    """Resolve error log path, respecting DOCSHELF_STORE_PATH."""
    store = os.environ.get("DOCSHELF_STORE_PATH")
    if store:
        return Path(store) / "docshelf-errors.log"
    return Path.home() / ".docshelf" / "docshelf-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path


def store_call(store: str, operation: str, fn, *args, **kwargs):
    """Invoke a store method, wrapping native exceptions in StoreFailure.

    DocshelfError subclasses (NotFound, Cancelled, ...) pass through
    unchanged so callers can branch on them.
    """
    try:
        return fn(*args, **kwargs)
    except DocshelfError:
        raise
    except Exception as e:
        raise StoreFailure(store, operation, str(e)) from e
