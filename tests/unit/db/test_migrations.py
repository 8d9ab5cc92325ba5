"""Tests for the forward-only migration runner."""

from __future__ import annotations

import pytest

import notegraph.db.migrations as mod
from notegraph.db.connection import Database
from notegraph.db.migrations import MIGRATIONS, current_version, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_current_version_after_migrations(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

@pytest.mark.parametrize("table", [
    "files",
    "chunks",
    "chunk_rowids",
    "notes",
    "note_tags",
    "note_keywords",
    "note_sources",
    "typed_links",
    "db_meta",
])
def test_run_migrations_creates_table(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


# --- Vec table is NOT created by migrations ---

def test_run_migrations_does_not_create_vec_table(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert not _table_exists(conn, "chunk_embeddings")
    conn.close()


# --- Incremental application ---

def test_run_migrations_applies_only_pending(tmp_path):
    """A DB already at version 1 only runs the v2 migration."""
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    original = mod.MIGRATIONS
    mod.MIGRATIONS = [
        (1, "CREATE TABLE v1_marker (x INTEGER);"),
        (2, "CREATE TABLE IF NOT EXISTS v2_marker (x INTEGER);"),
    ]
    try:
        run_migrations(conn)
        assert _table_exists(conn, "v2_marker")
        assert not _table_exists(conn, "v1_marker")
        versions = [r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version").fetchall()]
        assert versions == [1, 2]
    finally:
        mod.MIGRATIONS = original
    conn.close()
