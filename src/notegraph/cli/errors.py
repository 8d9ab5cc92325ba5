"""notegraph rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from notegraph.cli.errors import err_no_db
    console.print(err_no_db(".notegraph.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".notegraph.db") -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No index database found at '{db_path}'.\n"
        "  Pass --db <path>, or point storage.db_path / NOTEGRAPH_DB_PATH at an indexed database."
    )


def err_not_initialized(db_path: str) -> str:
    """Database exists but records no embedding model/dimension."""
    return (
        f"[red]Error:[/] '{db_path}' has no recorded embedding model/dimension.\n"
        "  It was never indexed. Run your indexer against it first."
    )


def err_embedding_config_mismatch(detail: str) -> str:
    """The index refuses the configured embedding space."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Align storage.embedding_model/embedding_dim in notegraph.yaml with the database,\n"
        "  or delete the database and reindex."
    )


def err_config(detail: str) -> str:
    """A config file or environment variable is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix notegraph.yaml, ~/.notegraph/config.yaml, or the NOTEGRAPH_* variables."
    )


def err_note_not_found(path: str) -> str:
    """Path is not in the index."""
    return (
        f"[yellow]Note not found:[/] '{path}' is not in the index.\n"
        "  Paths are relative to the notes root, e.g. 'Projects/Alpha.md'.\n"
        "  Run:  notegraph resolve <name>  to look it up."
    )


def warn_bijection_broken(chunks: int, vectors: int, mappings: int) -> str:
    """Chunk / vector / mapping counts disagree."""
    return (
        "[red]✗[/] Chunk/vector mapping is inconsistent: "
        f"{chunks} chunks, {vectors} vectors, {mappings} mappings.\n"
        "  Delete the database and reindex."
    )
