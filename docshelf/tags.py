"""
Tag record management.

A tag record is one row in the metadata store's ``tags`` table holding
the set of paths that carry the tag. Records are created lazily on first
use and updated by read-modify-write. Each write is conditional on the
record version read, and lost races are retried, so concurrent taggers
of the same tag do not drop each other's paths.
"""

import logging
from typing import Iterable, Optional

from .context import OpContext
from .errors import ConditionFailed, NotFound, store_call
from .protocol import MetadataStoreProtocol
from .types import TAG_KEY, TAG_TABLE, Tag

logger = logging.getLogger(__name__)

DEFAULT_RETRY_LIMIT = 5


def intersect(left: list[str], right: Iterable[str]) -> list[str]:
    """Paths present in both sequences, in ``left`` order, without duplicates."""
    keep = set(right)
    seen: set[str] = set()
    result = []
    for path in left:
        if path in keep and path not in seen:
            seen.add(path)
            result.append(path)
    return result


class TagIndex:
    """
    Read and update tag records in a metadata store.
    """

    def __init__(
        self,
        metadata: MetadataStoreProtocol,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
    ):
        self._metadata = metadata
        self._retry_limit = max(1, retry_limit)

    def get(self, ctx: OpContext, name: str) -> Optional[Tag]:
        """The tag record, or None if no document was ever tagged with it."""
        try:
            record = store_call(
                "metadata", "get_item",
                self._metadata.get_item, ctx, TAG_TABLE, TAG_KEY, name,
            )
        except NotFound:
            return None
        return Tag.from_record(record)

    def paths(self, ctx: OpContext, name: str) -> list[str]:
        tag = self.get(ctx, name)
        return list(tag.paths) if tag else []

    def all(self, ctx: OpContext) -> list[Tag]:
        records = store_call("metadata", "scan", self._metadata.scan, ctx, TAG_TABLE)
        return [Tag.from_record(r) for r in records]

    def add_path(self, ctx: OpContext, name: str, path: str) -> bool:
        """
        Add ``path`` to the tag's path set.

        Returns:
            True if the path was added, False if it was already present
        """
        def apply(tag: Tag) -> bool:
            if tag.has(path):
                return False
            tag.paths.append(path)
            return True

        return self._update(ctx, name, apply)

    def remove_paths(self, ctx: OpContext, name: str, paths: Iterable[str]) -> int:
        """
        Remove paths from the tag's path set.

        Returns:
            Number of paths removed
        """
        drop = set(paths)
        removed = 0

        def apply(tag: Tag) -> bool:
            nonlocal removed
            before = len(tag.paths)
            tag.paths = [p for p in tag.paths if p not in drop]
            removed = before - len(tag.paths)
            return removed > 0

        self._update(ctx, name, apply)
        return removed

    def _update(self, ctx: OpContext, name: str, apply) -> bool:
        """Conditional read-modify-write with retry on lost races."""
        last_error: Optional[ConditionFailed] = None
        for attempt in range(1, self._retry_limit + 1):
            tag = self.get(ctx, name) or Tag(name=name)
            read_version = tag.version
            if not apply(tag):
                return False
            tag.version = read_version + 1
            try:
                store_call(
                    "metadata", "put_item",
                    self._metadata.put_item, ctx, TAG_TABLE, tag.to_record(),
                    expected_version=read_version,
                )
                return True
            except ConditionFailed as e:
                last_error = e
                logger.debug("Tag %r changed concurrently (attempt %d), retrying", name, attempt)
        logger.warning("Giving up on tag %r after %d conflicting writes", name, self._retry_limit)
        raise last_error

    def intersect(self, ctx: OpContext, names: list[str]) -> list[str]:
        """
        Paths carrying every tag in ``names``.

        An absent or empty tag makes the whole result empty. The result
        set does not depend on the order of ``names``; the order follows
        the first tag's path list.
        """
        paths: Optional[list[str]] = None
        for name in names:
            tag_paths = self.paths(ctx, name)
            if not tag_paths:
                logger.debug("Tag %r has no paths, intersection is empty", name)
                return []
            paths = tag_paths if paths is None else intersect(paths, tag_paths)
            if not paths:
                return []
        return paths or []
