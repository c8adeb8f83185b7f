"""
Data types for docshelf documents and tags.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .errors import InvalidArgument

# Logical tables in the metadata store and their key fields
DOC_TABLE = "documents"
DOC_KEY = "path"
TAG_TABLE = "tags"
TAG_KEY = "name"

MAX_PATH_LENGTH = 1024
MAX_TAG_LENGTH = 128

# Paths: printable characters minus control chars and backslash (path confusion)
_PATH_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f\\]')


def utc_now() -> str:
    """Current UTC timestamp with microseconds: YYYY-MM-DDTHH:MM:SS.ffffff.

    All timestamps in docshelf are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime."""
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def validate_path(path: str) -> None:
    """Validate a document path: non-empty, bounded, no control characters.

    Paths are canonical ``/``-separated segments: no leading or trailing
    slash, no empty, ``.`` or ``..`` segment. ``a/b``, ``/a/b`` and
    ``a//b`` would otherwise be three keys for one document.
    """
    if not path:
        raise InvalidArgument("document path must not be empty")
    if len(path) > MAX_PATH_LENGTH:
        raise InvalidArgument(f"document path exceeds {MAX_PATH_LENGTH} characters")
    if _PATH_BLOCKED_RE.search(path):
        raise InvalidArgument(f"document path contains invalid characters: {path!r}")
    if any(segment in ("", ".", "..") for segment in path.split("/")):
        raise InvalidArgument(f"document path is not canonical: {path!r}")


def validate_tag_name(name: str) -> None:
    if not name or not name.strip():
        raise InvalidArgument("tag name must not be empty")
    if len(name) > MAX_TAG_LENGTH:
        raise InvalidArgument(f"tag name exceeds {MAX_TAG_LENGTH} characters: {name[:32]!r}...")


def unique(values: Iterable[str]) -> list[str]:
    """De-duplicate preserving first occurrence."""
    seen: set[str] = set()
    result = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


@dataclass
class Document:
    """
    A stored document.

    ``content`` lives only in the content store. Records written to the
    metadata store never carry it (see ``to_record``).
    """
    path: str
    content: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """Metadata-store record for this document, without content."""
        return {
            "path": self.path,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Document":
        """Build a Document from a metadata record. Content is never populated."""
        return cls(
            path=record["path"],
            content=None,
            created_at=record.get("created_at", ""),
            updated_at=record.get("updated_at", ""),
            meta=dict(record.get("meta") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        d = self.to_record()
        if self.content is not None:
            d["content"] = self.content
        return d


@dataclass
class Tag:
    """A named set of document paths. ``version`` is the optimistic-write token."""
    name: str
    paths: list[str] = field(default_factory=list)
    version: int = 0

    def has(self, path: str) -> bool:
        return path in self.paths

    def to_record(self) -> dict[str, Any]:
        return {"name": self.name, "paths": list(self.paths), "version": self.version}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Tag":
        return cls(
            name=record["name"],
            paths=unique(record.get("paths") or []),
            version=int(record.get("version", 0)),
        )
