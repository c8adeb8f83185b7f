"""Tests for the docshelf command line."""

import json

import pytest
from typer.testing import CliRunner

from docshelf.cli import app

runner = CliRunner()

pytestmark = pytest.mark.sqlite


def invoke(*args, input=None):
    return runner.invoke(app, list(args), input=input)


def test_put_from_stdin_and_get(isolated_store):
    result = invoke("put", "notes/a.md", input="hello from stdin")
    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("notes/a.md")

    result = invoke("get", "notes/a.md")
    assert result.exit_code == 0
    assert result.stdout == "hello from stdin\n"


def test_put_from_file(isolated_store, tmp_path):
    source = tmp_path / "source.md"
    source.write_text("file body", encoding="utf-8")

    result = invoke("put", "a.md", "--file", str(source), "--tag", "docs")
    assert result.exit_code == 0, result.output
    assert invoke("get", "a.md").stdout == "file body\n"


def test_explicit_store_option(tmp_path):
    store = tmp_path / "explicit"
    result = runner.invoke(app, ["--store", str(store), "put", "a.md"], input="x")
    assert result.exit_code == 0, result.output
    assert (store / "docshelf.toml").exists()


def test_get_missing_exits_2(isolated_store):
    result = invoke("get", "nope.md")
    assert result.exit_code == 2
    assert "not found" in result.output


def test_invalid_path_exits_1(isolated_store):
    result = invoke("put", "bad\\path", input="x")
    assert result.exit_code == 1
    assert "invalid characters" in result.output
    assert (isolated_store / "docshelf-errors.log").exists()


def test_list_with_query_and_tags(isolated_store):
    invoke("put", "doc1", "--tag", "a", input="plain text")
    invoke("put", "doc2", "--tag", "a", "--tag", "b", input="foo and bar")
    invoke("put", "doc3", "--tag", "b", input="more foo")

    result = invoke("list", "--tag", "a", "--tag", "b")
    assert result.exit_code == 0
    assert [line.split()[0] for line in result.stdout.splitlines()] == ["doc2"]

    result = invoke("list", "foo", "--tag", "a")
    assert [line.split()[0] for line in result.stdout.splitlines()] == ["doc2"]

    result = invoke("list", "--tag", "nonexistent-tag")
    assert result.exit_code == 0
    assert result.stdout == ""


def test_list_json(isolated_store):
    invoke("put", "a.md", input="x")
    invoke("put", "b.md", input="y")

    result = invoke("--json", "list")
    assert result.exit_code == 0
    docs = json.loads(result.stdout)
    assert [d["path"] for d in docs] == ["a.md", "b.md"]
    assert all("content" not in d for d in docs)


def test_tag_command(isolated_store):
    invoke("put", "a.md", input="x")

    result = invoke("tag", "a.md", "one", "two")
    assert result.exit_code == 0, result.output
    result = invoke("list", "--tag", "one", "--tag", "two")
    assert result.stdout.split()[0] == "a.md"


def test_rm(isolated_store):
    invoke("put", "a.md", input="x")

    assert invoke("rm", "a.md").exit_code == 0
    assert invoke("get", "a.md").exit_code == 2
    assert invoke("rm", "a.md").exit_code == 2


def test_reconcile_and_orphans(isolated_store):
    invoke("put", "a.md", input="x")
    (isolated_store / "content" / "stray.md.blob").write_bytes(b"left behind")

    result = invoke("--json", "reconcile")
    assert result.exit_code == 0
    assert json.loads(result.stdout)["orphaned_blobs"] == ["stray.md"]

    result = invoke("reconcile", "--fix")
    assert result.exit_code == 0
    assert "Orphaned blobs: 1" in result.stdout
    assert "1 blobs" in result.stdout
    assert not (isolated_store / "content" / "stray.md.blob").exists()

    result = invoke("--json", "orphans")
    assert result.exit_code == 0
    assert json.loads(result.stdout) == []


def test_reindex(isolated_store):
    invoke("put", "a.md", input="alpha")
    invoke("put", "b.md", input="beta")

    result = invoke("reindex")
    assert result.exit_code == 0
    assert "Indexed 2 documents" in result.stdout
    assert invoke("list", "beta").stdout.split()[0] == "b.md"
