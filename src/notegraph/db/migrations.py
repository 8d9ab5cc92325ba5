"""Forward-only migration runner for the notegraph index schema.

The vec table (chunk_embeddings) is NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS files (
    path            TEXT PRIMARY KEY,
    mtime_ms        INTEGER NOT NULL,
    size_bytes      INTEGER NOT NULL,
    content_hash    TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunks (
    chunk_id            TEXT PRIMARY KEY,
    path                TEXT NOT NULL REFERENCES files(path) ON DELETE CASCADE,
    chunk_index         INTEGER NOT NULL CHECK (chunk_index >= 0),
    heading             TEXT,
    heading_path_json   TEXT NOT NULL DEFAULT '[]',
    content             TEXT NOT NULL,
    content_hash        TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunks_path_index ON chunks(path, chunk_index);

-- vec0 rows are addressed by integer rowid only; this table is the bijection.
CREATE TABLE IF NOT EXISTS chunk_rowids (
    vec_rowid   INTEGER PRIMARY KEY AUTOINCREMENT,
    chunk_id    TEXT NOT NULL UNIQUE REFERENCES chunks(chunk_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS notes (
    path                TEXT PRIMARY KEY REFERENCES files(path) ON DELETE CASCADE,
    note_id             TEXT,
    created             TEXT,
    title               TEXT,
    summary             TEXT,
    entity              TEXT,
    layer               TEXT,
    status              TEXT,
    updated             TEXT,
    frontmatter_json    TEXT NOT NULL DEFAULT '{}',
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notes_note_id ON notes(note_id);
CREATE INDEX IF NOT EXISTS idx_notes_title ON notes(title);
CREATE INDEX IF NOT EXISTS idx_notes_entity ON notes(entity);
CREATE INDEX IF NOT EXISTS idx_notes_layer ON notes(layer);
CREATE INDEX IF NOT EXISTS idx_notes_status ON notes(status);

CREATE TABLE IF NOT EXISTS note_tags (
    path    TEXT NOT NULL REFERENCES notes(path) ON DELETE CASCADE,
    tag     TEXT NOT NULL,
    PRIMARY KEY (path, tag)
);
CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag);

CREATE TABLE IF NOT EXISTS note_keywords (
    path    TEXT NOT NULL REFERENCES notes(path) ON DELETE CASCADE,
    keyword TEXT NOT NULL,
    PRIMARY KEY (path, keyword)
);
CREATE INDEX IF NOT EXISTS idx_note_keywords_keyword ON note_keywords(keyword);

CREATE TABLE IF NOT EXISTS note_sources (
    path    TEXT NOT NULL REFERENCES notes(path) ON DELETE CASCADE,
    source  TEXT NOT NULL,
    PRIMARY KEY (path, source)
);

CREATE TABLE IF NOT EXISTS typed_links (
    from_path   TEXT NOT NULL REFERENCES notes(path) ON DELETE CASCADE,
    rel         TEXT NOT NULL,
    to_target   TEXT NOT NULL,
    to_wikilink TEXT NOT NULL,
    position    INTEGER NOT NULL,
    created_at  TEXT NOT NULL,
    PRIMARY KEY (from_path, rel, to_target, position)
);
CREATE INDEX IF NOT EXISTS idx_typed_links_from_rel ON typed_links(from_path, rel);
CREATE INDEX IF NOT EXISTS idx_typed_links_rel_to ON typed_links(rel, to_target);
CREATE INDEX IF NOT EXISTS idx_typed_links_to ON typed_links(to_target);

-- Records the embedding model/dimension so one DB never mixes vector spaces.
CREATE TABLE IF NOT EXISTS db_meta (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    The vec table is not managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
