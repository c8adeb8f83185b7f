"""
CLI interface for docshelf.

Usage:
    docshelf put notes/todo.md --file todo.md --tag home
    docshelf get notes/todo.md
    docshelf list "milk" --tag home
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Shelf
from .errors import DocshelfError, NotFound, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Document

# Configure quiet mode by default
# Set DOCSHELF_VERBOSE=1 to enable debug mode via environment
if os.environ.get("DOCSHELF_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"docshelf {version('docshelf')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="docshelf",
    help="Documents with content, metadata and tags kept in step across stores.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="DOCSHELF_STORE_PATH",
        help="Path to the store directory (default: ~/.docshelf/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Documents with content, metadata and tags kept in step across stores."""


TagOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--tag", "-t",
        help="Tag name (repeatable)"
    )
]


def _get_shelf() -> Shelf:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        shelf = Shelf(_store_override)
    except (DocshelfError, OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(shelf.close)
    return shelf


def _fail(e: DocshelfError, command: str):
    """Report a failed command and exit (2 = not found, 1 = anything else)."""
    log_path = log_exception(e, command)
    typer.echo(f"Error: {e}", err=True)
    if not isinstance(e, NotFound):
        typer.echo(f"Details logged to {log_path}", err=True)
    raise typer.Exit(2 if isinstance(e, NotFound) else 1)


def _format_doc_line(doc: Document) -> str:
    return f"{doc.path}  {doc.updated_at[:19]}"


def _format_docs(docs: list[Document], as_json: bool) -> str:
    if as_json:
        return json.dumps([d.to_dict() for d in docs], indent=2, ensure_ascii=False)
    return "\n".join(_format_doc_line(d) for d in docs)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def put(
    path: Annotated[str, typer.Argument(help="Document path")],
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-f",
        help="Read content from this file (default: stdin)",
        exists=True, dir_okay=False, readable=True,
    )] = None,
    tags: TagOption = None,
):
    """Create or update a document."""
    if file is not None:
        content = file.read_text(encoding="utf-8")
    elif not sys.stdin.isatty():
        content = sys.stdin.read()
    else:
        typer.echo("Error: no content. Use --file or pipe content on stdin.", err=True)
        raise typer.Exit(1)

    shelf = _get_shelf()
    try:
        doc = shelf.put(path, content, tags=tags)
    except DocshelfError as e:
        _fail(e, "put")
    if _get_json_output():
        typer.echo(json.dumps(doc.to_record(), indent=2, ensure_ascii=False))
    else:
        typer.echo(_format_doc_line(doc))


@app.command()
def get(
    path: Annotated[str, typer.Argument(help="Document path")],
):
    """Print a document's content."""
    shelf = _get_shelf()
    try:
        doc = shelf.get(path)
    except DocshelfError as e:
        _fail(e, "get")
    if _get_json_output():
        typer.echo(json.dumps(doc.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(doc.content)


@app.command("list")
def list_docs(
    query: Annotated[Optional[str], typer.Argument(help="Search text")] = None,
    tags: TagOption = None,
):
    """List documents matching QUERY and carrying every --tag."""
    shelf = _get_shelf()
    try:
        docs = shelf.list(query or "", tags=tags)
    except DocshelfError as e:
        _fail(e, "list")
    output = _format_docs(docs, _get_json_output())
    if output:
        typer.echo(output)


@app.command()
def tag(
    path: Annotated[str, typer.Argument(help="Document path")],
    names: Annotated[list[str], typer.Argument(help="Tag names")],
):
    """Tag a document."""
    shelf = _get_shelf()
    try:
        shelf.tag(path, *names)
    except DocshelfError as e:
        _fail(e, "tag")


@app.command("rm")
def remove(
    path: Annotated[str, typer.Argument(help="Document path")],
):
    """Delete a document (content and metadata)."""
    shelf = _get_shelf()
    try:
        shelf.remove(path)
    except DocshelfError as e:
        _fail(e, "rm")


@app.command()
def reconcile(
    fix: Annotated[bool, typer.Option(
        "--fix",
        help="Repair what is found (drop records without content, remove stray blobs, prune tags)"
    )] = False,
):
    """Check consistency between content, metadata and tags."""
    shelf = _get_shelf()
    try:
        result = shelf.reconcile(fix=fix)
    except DocshelfError as e:
        _fail(e, "reconcile")
    if _get_json_output():
        typer.echo(json.dumps(result, indent=2))
        return
    typer.echo(f"Records without content: {len(result['missing_content'])}")
    typer.echo(f"Orphaned blobs: {len(result['orphaned_blobs'])}")
    stale = sum(len(v) for v in result["stale_tag_paths"].values())
    typer.echo(f"Stale tag references: {stale}")
    if fix:
        typer.echo(
            f"Fixed: {result['fixed_documents']} records, "
            f"{result['removed_blobs']} blobs, {result['pruned_tag_paths']} tag references"
        )


@app.command()
def orphans(
    resolved: Annotated[bool, typer.Option(
        "--resolved",
        help="Show resolved entries instead of open ones"
    )] = False,
):
    """Show resources left behind by failed rollbacks or deletes."""
    shelf = _get_shelf()
    entries = shelf.orphans("resolved" if resolved else "open")
    if _get_json_output():
        typer.echo(json.dumps([e.to_dict() for e in entries], indent=2))
        return
    for entry in entries:
        typer.echo(f"{entry.flagged_at[:19]}  {entry.kind:<18} {entry.path}  {entry.error}")


@app.command()
def reindex():
    """Rebuild the search index from stored content."""
    shelf = _get_shelf()
    try:
        count = shelf.reindex()
    except DocshelfError as e:
        _fail(e, "reindex")
    typer.echo(f"Indexed {count} documents")


def main():
    app()


if __name__ == "__main__":
    main()
