"""Tests for notegraph remove command."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from typer.testing import CliRunner

from notegraph.cli.main import app
from notegraph.db.connection import Database
from notegraph.db.models import Chunk, File, Note, TypedLink
from notegraph.db.repository import Repository
from notegraph.db.schema import initialize

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_db(path: Path) -> tuple[sqlite3.Connection, Repository]:
    conn = Database(path).connect()
    initialize(conn, embedding_model="test/embedding-3d", embedding_dim=3)
    return conn, Repository(conn)


def _add_note(repo: Repository, path: str = "Projects/Alpha.md") -> None:
    repo.upsert_file(File(path=path, mtime_ms=0, size_bytes=10, content_hash="h"))
    repo.upsert_note(Note(path=path, title="Alpha"))
    repo.replace_typed_links(path, [TypedLink("cites", "Beta", "[[Beta]]", 0)])
    for i in range(2):
        repo.insert_chunk_with_embedding(
            Chunk(chunk_id=f"{path}#{i}", path=path, chunk_index=i, content="x", content_hash=f"c{i}"),
            [float(i), 0.0, 0.0],
        )


def _seeded_db(tmp_path: Path) -> Path:
    db_path = tmp_path / ".notegraph.db"
    conn, repo = _make_db(db_path)
    _add_note(repo)
    _add_note(repo, "Other.md")
    conn.close()
    return db_path


def _counts(db_path: Path) -> tuple[int, int, int, int]:
    conn = Database(db_path).connect()
    repo = Repository(conn)
    counts = (repo.count_files(), repo.count_chunks(), repo.count_vectors(), repo.count_typed_links())
    conn.close()
    return counts


# ---------------------------------------------------------------------------
# notegraph remove: no DB
# ---------------------------------------------------------------------------


def test_remove_no_db_exits_1(tmp_path: Path) -> None:
    missing = tmp_path / "missing.db"
    result = runner.invoke(app, ["remove", "--path", "a.md", "--db", str(missing), "--yes"])
    assert result.exit_code == 1
    assert "No index database" in result.output


# ---------------------------------------------------------------------------
# notegraph remove: path not found
# ---------------------------------------------------------------------------


def test_remove_path_not_found_exits_0(tmp_path: Path) -> None:
    db_path = _seeded_db(tmp_path)
    result = runner.invoke(app, ["remove", "--path", "nope.md", "--db", str(db_path), "--yes"])
    assert result.exit_code == 0
    assert "Note not found" in result.output
    assert _counts(db_path)[0] == 2


# ---------------------------------------------------------------------------
# notegraph remove: confirmation prompt
# ---------------------------------------------------------------------------


def test_remove_prompt_declined(tmp_path: Path) -> None:
    db_path = _seeded_db(tmp_path)
    result = runner.invoke(
        app, ["remove", "--path", "Projects/Alpha.md", "--db", str(db_path)], input="n\n"
    )
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert _counts(db_path) == (2, 4, 4, 2)


def test_remove_prompt_accepted(tmp_path: Path) -> None:
    db_path = _seeded_db(tmp_path)
    result = runner.invoke(
        app, ["remove", "--path", "Projects/Alpha.md", "--db", str(db_path)], input="y\n"
    )
    assert result.exit_code == 0
    assert "Removed" in result.output
    assert _counts(db_path) == (1, 2, 2, 1)


# ---------------------------------------------------------------------------
# notegraph remove: --yes
# ---------------------------------------------------------------------------


def test_remove_yes_deletes_everything_for_path(tmp_path: Path) -> None:
    db_path = _seeded_db(tmp_path)

    result = runner.invoke(
        app, ["remove", "-p", "Projects/Alpha.md", "--db", str(db_path), "-y"]
    )

    assert result.exit_code == 0
    assert "Chunks: 2" in result.output
    assert "Typed links: 1" in result.output

    conn = Database(db_path).connect()
    repo = Repository(conn)
    assert repo.get_file("Projects/Alpha.md") is None
    assert repo.get_note_meta("Projects/Alpha.md") is None
    assert repo.count_chunks() == repo.count_vectors() == repo.count_mappings() == 2
    assert repo.get_file("Other.md") is not None
    conn.close()


def test_remove_file_without_note_metadata(tmp_path: Path) -> None:
    db_path = tmp_path / ".notegraph.db"
    conn, repo = _make_db(db_path)
    repo.upsert_file(File(path="raw.md", mtime_ms=0, size_bytes=1, content_hash="h"))
    conn.close()

    result = runner.invoke(app, ["remove", "--path", "raw.md", "--db", str(db_path), "--yes"])

    assert result.exit_code == 0
    assert "Metadata: no" in result.output
    assert _counts(db_path)[0] == 0


def test_remove_uninitialized_db_exits_1(tmp_path: Path) -> None:
    db_path = tmp_path / "blank.db"
    Database(db_path).connect().close()
    result = runner.invoke(app, ["remove", "--path", "a.md", "--db", str(db_path), "--yes"])
    assert result.exit_code == 1
    assert "never indexed" in result.output
