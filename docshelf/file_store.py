"""
Content store backed by the local filesystem.

Each document path maps to exactly one file under the content root.
Path segments are percent-encoded and the hierarchy is kept as
directories. Blob files end in ``.blob`` and directories in ``.d``, so
``a`` and ``a/b`` can be stored side by side and no two document paths
share a file.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from urllib.parse import quote, unquote

from .context import OpContext
from .errors import InvalidArgument, NotFound, StoreFailure

logger = logging.getLogger(__name__)

_TMP_PREFIX = ".tmp-"
BLOB_SUFFIX = ".blob"
DIR_SUFFIX = ".d"


class LocalFileStore:
    """
    Filesystem-backed store for raw document content.

    Writes are atomic per path (temp file + rename), which gives the
    per-key atomicity the coordinator relies on.
    """

    def __init__(self, root: Path):
        """
        Args:
            root: Directory holding the content files (created if missing)
        """
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._resolved_root = self._root.resolve()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _file_for(self, path: str) -> Path:
        """Map a document path to its file, refusing anything outside the root.

        Empty, ``.`` and ``..`` segments are refused rather than collapsed,
        so distinct paths never map to the same file.
        """
        parts = path.split("/")
        if any(p in ("", ".", "..") for p in parts):
            raise InvalidArgument(f"document path cannot be stored: {path!r}")
        dirs = [quote(p, safe="") + DIR_SUFFIX for p in parts[:-1]]
        target = self._resolved_root.joinpath(*dirs, quote(parts[-1], safe="") + BLOB_SUFFIX)
        if self._resolved_root not in target.parents:
            raise InvalidArgument(f"document path escapes content root: {path!r}")
        return target

    def read_file(self, ctx: OpContext, path: str) -> bytes:
        ctx.check()
        target = self._file_for(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise NotFound("content", path) from None
        except OSError as e:
            raise StoreFailure("content", "read_file", str(e)) from e

    def write_file(self, ctx: OpContext, path: str, data: bytes) -> None:
        ctx.check()
        target = self._file_for(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=target.parent)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, target)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise StoreFailure("content", "write_file", str(e)) from e
        logger.debug("Wrote %d bytes for %s", len(data), path)

    def remove_file(self, ctx: OpContext, path: str) -> None:
        ctx.check()
        target = self._file_for(path)
        try:
            target.unlink()
        except FileNotFoundError:
            raise NotFound("content", path) from None
        except OSError as e:
            raise StoreFailure("content", "remove_file", str(e)) from e
        self._prune_empty_dirs(target.parent)

    def _prune_empty_dirs(self, directory: Path) -> None:
        """Remove now-empty parent directories up to (not including) the root."""
        with self._lock:
            while directory != self._resolved_root and self._resolved_root in directory.parents:
                try:
                    directory.rmdir()
                except OSError:
                    return
                directory = directory.parent

    def list_paths(self, ctx: OpContext) -> list[str]:
        """List every stored document path, sorted."""
        ctx.check()
        paths = []
        for dirpath, _dirnames, filenames in os.walk(self._resolved_root):
            rel = Path(dirpath).relative_to(self._resolved_root)
            if any(not p.endswith(DIR_SUFFIX) for p in rel.parts):
                continue
            prefix = [unquote(p[:-len(DIR_SUFFIX)]) for p in rel.parts]
            for name in filenames:
                # Temp files from interrupted writes never carry the blob suffix
                if not name.endswith(BLOB_SUFFIX):
                    continue
                paths.append("/".join(prefix + [unquote(name[:-len(BLOB_SUFFIX)])]))
        return sorted(paths)

    def close(self) -> None:
        pass
