"""notegraph CLI entry point — read-only inspection of an index database.

Ingestion is driven elsewhere; these commands open an existing index.
"""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer
from rich.console import Console

from notegraph.cli.errors import err_config
from notegraph.cli.notes import graph_cmd, note_cmd, resolve_cmd
from notegraph.cli.remove import remove_cmd
from notegraph.cli.status import status_cmd
from notegraph.config import ConfigError, load_config
from notegraph.log import configure_logging

console = Console()


def _installed_version() -> str:
    try:
        return importlib.metadata.version("notegraph")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"notegraph {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="notegraph",
    help=(
        "notegraph — hybrid vector + typed-link retrieval over a notes index.\n\n"
        "  notegraph status   Index counts and integrity.\n"
        "  notegraph graph    Typed-link expansion from seed notes."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug events to stderr."),
    ] = False,
) -> None:
    """notegraph — hybrid vector + typed-link retrieval over a notes index."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    configure_logging("debug" if verbose else cfg.logging.level, cfg.logging.json)


app.command("status")(status_cmd)
app.command("note")(note_cmd)
app.command("resolve")(resolve_cmd)
app.command("graph")(graph_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed notegraph version."""
    typer.echo(f"notegraph {_installed_version()}")


if __name__ == "__main__":
    app()
