"""notegraph note / resolve / graph — read-only index inspection.

  notegraph note Projects/Alpha.md          metadata + typed links as JSON
  notegraph resolve "Alpha"                 candidate notes for a link target
  notegraph graph --seed Projects/Alpha.md  typed-link expansion as JSON

Graph seeds enter at distance 0, so node scores reduce to hop penalties.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from notegraph.cli.errors import err_note_not_found
from notegraph.cli.index import DbOption, load_cli_config, open_index, resolve_db_path
from notegraph.db.repository import Repository
from notegraph.engine import RetrievalEngine

console = Console()


def note_cmd(
    path: Annotated[str, typer.Argument(help="Note path as stored in the index.")],
    db: DbOption = None,
) -> None:
    """Print a note's metadata, tags, and typed links as JSON."""
    cfg = load_cli_config()
    conn, _ = open_index(resolve_db_path(db, cfg), cfg)
    try:
        meta = RetrievalEngine(Repository(conn), cfg).get_note_metadata(path)
    finally:
        conn.close()

    if meta is None:
        console.print(err_note_not_found(path))
        raise typer.Exit(1)
    typer.echo(json.dumps(asdict(meta), indent=2, ensure_ascii=False, default=str))


def resolve_cmd(
    target: Annotated[str, typer.Argument(help="Link target as written, e.g. 'Alpha' or 'Projects/Alpha.md'.")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum matches (1-200).")] = 20,
    db: DbOption = None,
) -> None:
    """Show the notes a link target resolves to, in priority order."""
    cfg = load_cli_config()
    conn, _ = open_index(resolve_db_path(db, cfg), cfg)
    try:
        matches = RetrievalEngine(Repository(conn), cfg).resolve_targets(target, limit)
    finally:
        conn.close()

    if not matches:
        console.print(f"[yellow]No notes match[/] '{target}'.")
        return

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Path", style="bold")
    table.add_column("Title")
    table.add_column("Matched by", style="dim")
    for match in matches:
        table.add_row(match.path, match.title or "", match.matched_by)
    console.print(table)


def graph_cmd(
    seed: Annotated[
        list[str],
        typer.Option("--seed", "-s", help="Seed note path (repeatable)."),
    ],
    rel: Annotated[
        list[str] | None,
        typer.Option("--rel", "-r", help="Relation to follow (repeatable; default: all canonical)."),
    ] = None,
    max_hops: Annotated[int | None, typer.Option("--max-hops", help="Hops from seeds (0-3).")] = None,
    max_notes: Annotated[int | None, typer.Option("--max-notes", help="Node cap (1-200).")] = None,
    max_edges: Annotated[int | None, typer.Option("--max-edges", help="Edge cap (1-10000).")] = None,
    max_links_per_note: Annotated[
        int | None,
        typer.Option("--max-links-per-note", help="New edges per note per direction (1-200)."),
    ] = None,
    incoming: Annotated[
        bool,
        typer.Option("--incoming", help="Also follow links pointing at each note."),
    ] = False,
    path_prefix: Annotated[
        str | None,
        typer.Option("--path-prefix", help="Ignore notes outside this path prefix."),
    ] = None,
    db: DbOption = None,
) -> None:
    """Expand typed links from seed notes and print nodes and edges as JSON."""
    cfg = load_cli_config()
    conn, space = open_index(resolve_db_path(db, cfg), cfg)
    try:
        engine = RetrievalEngine(Repository(conn, embedding_dim=space.dim), cfg)
        result = engine.expand_graph(
            [(s, 0.0) for s in seed],
            relations=rel,
            max_hops=max_hops,
            max_notes=max_notes,
            max_edges=max_edges,
            max_links_per_note=max_links_per_note,
            include_incoming=incoming or None,
            path_prefix=path_prefix,
        )
    finally:
        conn.close()

    payload = {
        "seeds": seed,
        "truncated": result.truncated,
        "nodes": [asdict(n) for n in result.nodes],
        "edges": [asdict(e) for e in result.edges],
    }
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
