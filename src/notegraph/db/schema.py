"""Schema initialization: migrations, embedding config guard, vec table."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from notegraph.db.errors import EmbeddingConfigMismatchError, StorageError
from notegraph.db.migrations import run_migrations
from notegraph.db.vectors import ensure_vec_table

META_EMBEDDING_MODEL = "embedding_model"
META_EMBEDDING_DIM = "embedding_dim"


@dataclass(frozen=True)
class EmbeddingSpace:
    """The embedding model and dimension a database was built with."""

    model: str
    dim: int


def now_iso() -> str:
    """UTC timestamp with second precision, as stored in *_at columns."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def initialize(
    conn: sqlite3.Connection,
    embedding_model: str | None = None,
    embedding_dim: int | None = None,
) -> EmbeddingSpace:
    """Initialize the schema and bind the database to one embedding space (idempotent).

    On first use the model/dimension are recorded in db_meta. Later calls must
    pass the same values, or none at all to reuse the recorded ones.

    Raises:
        EmbeddingConfigMismatchError: If the recorded model/dimension differ from
            the requested ones, or chunks exist without a recorded config.
        StorageError: If no embedding config is given and none is recorded.
    """
    run_migrations(conn)

    recorded_model = _get_meta(conn, META_EMBEDDING_MODEL)
    recorded_dim_raw = _get_meta(conn, META_EMBEDDING_DIM)
    recorded_dim = int(recorded_dim_raw) if recorded_dim_raw and recorded_dim_raw.isdigit() else None

    if recorded_model is None or recorded_dim is None:
        if embedding_model is None or embedding_dim is None:
            raise StorageError(
                "Index database has no recorded embedding model/dimension. "
                "Open it once with an explicit embedding_model and embedding_dim."
            )
        has_chunks = conn.execute("SELECT 1 FROM chunks LIMIT 1").fetchone() is not None
        if has_chunks:
            raise EmbeddingConfigMismatchError(
                "Index database holds chunks but does not record the embedding "
                "model/dimension; refusing to mix embeddings. Delete it and reindex."
            )
        if embedding_dim < 1:
            raise ValueError(f"embedding_dim must be >= 1, got {embedding_dim}")
        with conn:
            _set_meta(conn, META_EMBEDDING_MODEL, embedding_model)
            _set_meta(conn, META_EMBEDDING_DIM, str(embedding_dim))
        space = EmbeddingSpace(model=embedding_model, dim=embedding_dim)
    else:
        space = EmbeddingSpace(model=recorded_model, dim=recorded_dim)
        requested_model = embedding_model if embedding_model is not None else space.model
        requested_dim = embedding_dim if embedding_dim is not None else space.dim
        if requested_model != space.model or requested_dim != space.dim:
            raise EmbeddingConfigMismatchError(
                f"Embedding config mismatch: database expects model={space.model}, "
                f"dim={space.dim}; current run has model={requested_model}, "
                f"dim={requested_dim}. Delete the database and reindex, or use another path."
            )

    ensure_vec_table(conn, space.dim)
    return space


def _get_meta(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM db_meta WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def _set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO db_meta (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, value, now_iso()),
    )
