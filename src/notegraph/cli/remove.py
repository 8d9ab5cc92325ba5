"""notegraph remove — drop one note path from the index.

Removes the file record and everything hanging off it:
  - chunks + their vectors (one transaction)
  - note metadata, tags, keywords, sources
  - outgoing typed links

Incoming typed links from other notes are left alone; they stay unresolved
text until those notes are reindexed.

Usage:
  notegraph remove --path Projects/Alpha.md
  notegraph remove --path Projects/Alpha.md --yes
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from notegraph.cli.errors import err_note_not_found
from notegraph.cli.index import DbOption, load_cli_config, open_index, resolve_db_path
from notegraph.db.repository import Repository

console = Console()


def remove_cmd(
    path: Annotated[
        str,
        typer.Option("--path", "-p", help="Note path to remove, as stored in the index."),
    ],
    db: DbOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a note path and all its indexed data."""
    cfg = load_cli_config()
    conn, space = open_index(resolve_db_path(db, cfg), cfg)
    repo = Repository(conn, embedding_dim=space.dim)

    try:
        if repo.get_file(path) is None:
            console.print(err_note_not_found(path))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks(path)
        link_count = len(repo.list_typed_links(path))
        has_note = repo.get_note_meta(path) is not None

        console.print(f"\nRemove: [bold]{path}[/]")
        console.print(
            f"  Chunks: {chunk_count}  |  "
            f"Vectors: {chunk_count}  |  "
            f"Typed links: {link_count}  |  "
            f"Metadata: {'yes' if has_note else 'no'}"
        )

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_file_by_path(path)

        console.print(f"\n[green]✓[/] Removed: {path}")
        console.print(f"  {chunk_count} chunks and their vectors deleted")

    finally:
        conn.close()
