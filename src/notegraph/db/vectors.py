"""sqlite-vec virtual table management and embedding payload helpers."""

from __future__ import annotations

import json
import math
import sqlite3
import struct
from collections.abc import Sequence

VEC_TABLE = "chunk_embeddings"


def ensure_vec_table(conn: sqlite3.Connection, dimensions: int) -> str:
    """Create the chunk_embeddings vec0 table if it doesn't already exist.

    The table is keyed by an integer rowid only; the chunk_rowids mapping table
    is the sole record of which chunk owns which vector row.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()

    return VEC_TABLE


def embedding_to_json(embedding: Sequence[float]) -> str:
    """Serialise *embedding* to the JSON text form accepted by vec0 MATCH/INSERT.

    Raises:
        ValueError: If any component is not a finite number.
    """
    values = [float(v) for v in embedding]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("embedding contains non-finite values")
    return json.dumps(values)


def parse_embedding(value: object) -> list[float] | None:
    """Decode a stored embedding payload, or return None if it is unusable.

    Accepts a list of numbers, JSON text, or a little-endian float32 blob
    (the form vec0 returns when the column is selected directly).
    """
    if isinstance(value, list):
        if value and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
            return [float(v) for v in value]
        return None

    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return None
        return parse_embedding(parsed) if isinstance(parsed, list) else None

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if not raw or len(raw) % 4:
            return None
        return list(struct.unpack(f"<{len(raw) // 4}f", raw))

    return None
