"""
Query and tag-intersection engine for document listings.

Combines an optional free-text query (answered by the text index) with
an optional multi-tag filter (answered by tag records):

- no query, no tags: the whole corpus
- query only: the text index matches
- tags only: paths carrying every tag
- both: tagged paths that the text index also matched, in tag order

The engine only decides which paths to list. Turning paths into
documents is the coordinator's job.
"""

import logging
from typing import Optional

from .context import OpContext
from .errors import store_call
from .protocol import TextIndexProtocol
from .tags import TagIndex, intersect
from .types import unique, validate_tag_name

logger = logging.getLogger(__name__)


class QueryEngine:
    """Resolve (query, tags) to an ordered list of document paths."""

    def __init__(self, text_index: TextIndexProtocol, tags: TagIndex):
        self._text_index = text_index
        self._tags = tags

    def search(self, ctx: OpContext, query: str) -> list[str]:
        """Text index matches for ``query`` (an empty list means no matches)."""
        found = store_call("text index", "search", self._text_index.search, ctx, query)
        return unique(found or [])

    def resolve(self, ctx: OpContext, query: str = "", tags: tuple = ()) -> Optional[list[str]]:
        """
        Paths to list for a query/tag combination.

        Args:
            query: Free text; empty means "no query provided"
            tags: Tag names that must all be present

        Returns:
            Ordered, de-duplicated paths, or None meaning "every document"
        """
        names = unique(tags)
        for name in names:
            validate_tag_name(name)

        found: Optional[list[str]] = None
        if query:
            found = self.search(ctx, query)
            logger.debug("Query %r matched %d paths", query, len(found))

        if not names:
            return found

        tagged = self._tags.intersect(ctx, names)
        if found is None:
            return tagged
        if not found:
            return []
        return intersect(tagged, found)
