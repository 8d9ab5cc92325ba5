"""Config loading and index opening shared by notegraph commands.

The database path comes from --db, else storage.db_path (NOTEGRAPH_DB_PATH
overrides the YAML value). The configured embedding model/dimension, when
set, must match the one the index records.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from notegraph.cli.errors import (
    err_config,
    err_embedding_config_mismatch,
    err_no_db,
    err_not_initialized,
)
from notegraph.config import ConfigError, NotegraphConfig, load_config
from notegraph.db.connection import Database
from notegraph.db.errors import EmbeddingConfigMismatchError, StorageError
from notegraph.db.schema import EmbeddingSpace, initialize

console = Console()

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the index database (default: storage.db_path)."),
]


def load_cli_config() -> NotegraphConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db_path(db: Path | None, cfg: NotegraphConfig) -> Path:
    return db if db is not None else Path(cfg.storage.db_path)


def open_index(db_path: Path, cfg: NotegraphConfig) -> tuple[sqlite3.Connection, EmbeddingSpace]:
    """Open an existing index and check it against the configured embedding space.

    Exits with code 1 when the file is missing, was never indexed, or was
    built with a different embedding model/dimension.
    """
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = Database(db_path).connect()
    try:
        space = initialize(
            conn,
            embedding_model=cfg.storage.embedding_model,
            embedding_dim=cfg.storage.embedding_dim,
        )
    except EmbeddingConfigMismatchError as exc:
        conn.close()
        console.print(err_embedding_config_mismatch(str(exc)))
        raise typer.Exit(1)
    except StorageError:
        conn.close()
        console.print(err_not_initialized(str(db_path)))
        raise typer.Exit(1)
    return conn, space
