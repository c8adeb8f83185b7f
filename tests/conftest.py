"""
Shared pytest fixtures for docshelf tests.

Provides in-memory stores so coordinator tests run without touching the
filesystem, plus a wrapper that injects failures into any store method.
"""

import copy
import re
from typing import Any, Optional

import pytest

from docshelf.context import OpContext
from docshelf.coordinator import DocumentCoordinator
from docshelf.errors import ConditionFailed, NotFound
from docshelf.orphans import OrphanLedger

_KINDS = {"documents": "document", "tags": "tag"}


class MemoryContentStore:
    """Dict-backed content store."""

    def __init__(self):
        self.files: dict[str, bytes] = {}

    def read_file(self, ctx: OpContext, path: str) -> bytes:
        ctx.check()
        if path not in self.files:
            raise NotFound("content", path)
        return self.files[path]

    def write_file(self, ctx: OpContext, path: str, data: bytes) -> None:
        ctx.check()
        self.files[path] = bytes(data)

    def remove_file(self, ctx: OpContext, path: str) -> None:
        ctx.check()
        if path not in self.files:
            raise NotFound("content", path)
        del self.files[path]

    def list_paths(self, ctx: OpContext) -> list[str]:
        ctx.check()
        return sorted(self.files)

    def close(self) -> None:
        pass


class MemoryMetadataStore:
    """Dict-backed metadata store with version-conditional writes."""

    def __init__(self):
        self.keys = {"documents": "path", "tags": "name"}
        self.tables: dict[str, dict[str, dict]] = {"documents": {}, "tags": {}}

    def get_item(self, ctx: OpContext, table: str, key_name: str, key_value: str) -> dict[str, Any]:
        ctx.check()
        record = self.tables[table].get(key_value)
        if record is None:
            raise NotFound(_KINDS[table], key_value)
        return copy.deepcopy(record)

    def put_item(
        self,
        ctx: OpContext,
        table: str,
        record: dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        ctx.check()
        key_value = record[self.keys[table]]
        if expected_version is not None:
            current = self.tables[table].get(key_value, {}).get("version", 0)
            if current != expected_version:
                raise ConditionFailed(table, key_value, expected_version)
        self.tables[table][key_value] = copy.deepcopy(record)

    def delete_item(self, ctx: OpContext, table: str, key_name: str, key_value: str) -> None:
        ctx.check()
        self.tables[table].pop(key_value, None)

    def scan(self, ctx: OpContext, table: str) -> list[dict[str, Any]]:
        ctx.check()
        return [copy.deepcopy(self.tables[table][k]) for k in sorted(self.tables[table])]

    def close(self) -> None:
        pass


class MemoryTextIndex:
    """Keyword index: every query word must appear in the content."""

    def __init__(self):
        self.docs: dict[str, set[str]] = {}

    @staticmethod
    def _words(text: str) -> set[str]:
        return {w.lower() for w in re.findall(r"\w+", text)}

    def search(self, ctx: OpContext, query: str) -> list[str]:
        ctx.check()
        terms = self._words(query)
        if not terms:
            return []
        return [path for path, words in self.docs.items() if terms <= words]

    def index(self, ctx: OpContext, path: str, content: str) -> None:
        ctx.check()
        self.docs[path] = self._words(content)

    def remove(self, ctx: OpContext, path: str) -> None:
        ctx.check()
        self.docs.pop(path, None)

    def close(self) -> None:
        pass


class FailingStore:
    """Wraps a store; methods named in ``fail`` raise, ``hooks`` run first.

    Every call is recorded in ``calls`` as (method name, args).
    """

    def __init__(self, real):
        self._real = real
        self.fail: set[str] = set()
        self.hooks: dict[str, Any] = {}
        self.calls: list[tuple[str, tuple]] = []

    def __getattr__(self, name):
        attr = getattr(self._real, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            self.calls.append((name, args))
            if name in self.hooks:
                self.hooks[name](*args, **kwargs)
            if name in self.fail:
                raise RuntimeError(f"simulated {name} failure")
            return attr(*args, **kwargs)

        return call

    def called(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


class TickingClock:
    """Deterministic clock: each call returns a later timestamp."""

    def __init__(self):
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2026-01-01T00:00:{self.ticks:02d}.000000"


@pytest.fixture
def ctx():
    return OpContext.background()


@pytest.fixture
def content():
    return FailingStore(MemoryContentStore())


@pytest.fixture
def metadata():
    return FailingStore(MemoryMetadataStore())


@pytest.fixture
def search():
    return FailingStore(MemoryTextIndex())


@pytest.fixture
def ledger(tmp_path):
    ledger = OrphanLedger(tmp_path / "orphans.db")
    yield ledger
    ledger.close()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def coordinator(content, metadata, search, ledger, clock):
    """A coordinator over in-memory stores with failure injection."""
    return DocumentCoordinator(content, metadata, search, orphans=ledger, clock=clock)


@pytest.fixture
def isolated_store(tmp_path, monkeypatch):
    """Store directory for Shelf/CLI tests, with the error log kept inside it."""
    store_path = tmp_path / "shelf"
    monkeypatch.setenv("DOCSHELF_STORE_PATH", str(store_path))
    return store_path


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "sqlite: marks tests that use the SQLite-backed stores"
    )
