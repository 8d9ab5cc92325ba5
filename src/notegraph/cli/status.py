"""notegraph status command.

Shows an index overview: embedding space, entity counts, the chunk/vector
bijection check, and the most common tags and link relations.
Exits with code 1 when the bijection check fails.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from notegraph.cli.errors import warn_bijection_broken
from notegraph.cli.index import DbOption, load_cli_config, open_index, resolve_db_path
from notegraph.db.repository import Repository
from notegraph.db.schema import EmbeddingSpace

console = Console()

_FACET_LIMIT = 10


def status_cmd(
    db: DbOption = None,
) -> None:
    """Show index status: counts, embedding space, and integrity."""
    cfg = load_cli_config()
    db_path = resolve_db_path(db, cfg)
    conn, space = open_index(db_path, cfg)
    try:
        repo = Repository(conn, embedding_dim=space.dim)
        consistent = _show_index_panel(db_path, space, repo)
        _show_facets(repo)
    finally:
        conn.close()

    if not consistent:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_index_panel(db: Path, space: EmbeddingSpace, repo: Repository) -> bool:
    size_mb = db.stat().st_size / (1024 * 1024)
    chunks = repo.count_chunks()
    vectors = repo.count_vectors()
    mappings = repo.count_mappings()
    consistent = chunks == vectors == mappings

    lines = [
        f"Database:   {db} ({size_mb:.1f} MB)",
        f"Embedding:  [bold]{space.model}[/] ({space.dim} dims)",
        f"Files: [bold]{repo.count_files():,}[/]  |  "
        f"Notes: [bold]{repo.count_notes():,}[/]  |  "
        f"Chunks: [bold]{chunks:,}[/]  |  "
        f"Typed links: [bold]{repo.count_typed_links():,}[/]",
    ]
    if consistent:
        lines.append(f"[green]✓[/] {vectors:,} vectors, one per chunk")
    else:
        lines.append(warn_bijection_broken(chunks, vectors, mappings))

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
    return consistent


def _show_facets(repo: Repository) -> None:
    tags = repo.list_tags(limit=_FACET_LIMIT)
    rels = repo.list_typed_link_rels(limit=_FACET_LIMIT)
    if not tags and not rels:
        console.print("[dim]No tags or typed links indexed yet.[/]")
        return

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Top tags")
    table.add_column("Notes", justify="right", style="dim")
    table.add_column("Top relations")
    table.add_column("Links", justify="right", style="dim")

    for i in range(max(len(tags), len(rels))):
        tag, tag_count = tags[i] if i < len(tags) else ("", "")
        rel, rel_count = rels[i] if i < len(rels) else ("", "")
        table.add_row(tag, str(tag_count), rel, str(rel_count))

    console.print(Panel(table, title="[bold]Facets[/]", expand=False))
