"""Tests for notegraph status and the top-level CLI callback."""

from __future__ import annotations

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


def _make_db(path: Path, with_note: bool = True) -> None:
    conn = Database(path).connect()
    initialize(conn, embedding_model="test/embedding-3d", embedding_dim=3)
    if with_note:
        repo = Repository(conn)
        repo.upsert_file(File(path="a.md", mtime_ms=0, size_bytes=10, content_hash="h"))
        repo.upsert_note(Note(path="a.md", title="A"))
        repo.replace_note_tags("a.md", ["alpha"])
        repo.replace_typed_links("a.md", [TypedLink("cites", "B", "[[B]]", 0)])
        repo.insert_chunk_with_embedding(
            Chunk(chunk_id="a.md#0", path="a.md", chunk_index=0, content="x", content_hash="c"),
            [1.0, 0.0, 0.0],
        )
    conn.close()


# ---------------------------------------------------------------------------
# notegraph --version / version
# ---------------------------------------------------------------------------


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "notegraph" in result.output


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("notegraph ")


# ---------------------------------------------------------------------------
# Config errors surface before any command runs
# ---------------------------------------------------------------------------


def test_invalid_env_config_exits_1(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("NOTEGRAPH_LOG_LEVEL", "loud")
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_invalid_project_config_exits_1(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notegraph.yaml").write_text("graph:\n  max_hops: lots\n", encoding="utf-8")
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
    assert "max_hops" in result.output


# ---------------------------------------------------------------------------
# notegraph status
# ---------------------------------------------------------------------------


def test_status_no_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No index database" in result.output


def test_status_uninitialized_db_exits_1(tmp_path: Path) -> None:
    db_path = tmp_path / "empty.db"
    Database(db_path).connect().close()
    result = runner.invoke(app, ["status", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "never indexed" in result.output


def test_status_healthy_index(tmp_path: Path) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "test/embedding-3d" in result.output
    assert "one per chunk" in result.output
    assert "alpha" in result.output
    assert "cites" in result.output


def test_status_empty_index(tmp_path: Path) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path, with_note=False)

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "No tags or typed links" in result.output


def test_status_db_from_env(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "env.db"
    _make_db(db_path)
    monkeypatch.setenv("NOTEGRAPH_DB_PATH", str(db_path))
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "one per chunk" in result.output


def test_status_broken_bijection_exits_1(tmp_path: Path) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)
    conn = Database(db_path).connect()
    conn.execute("DELETE FROM chunk_embeddings")
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 1
    assert "inconsistent" in result.output


# ---------------------------------------------------------------------------
# storage: section drives the default db and the expected embedding space
# ---------------------------------------------------------------------------


def test_status_db_from_project_config(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "index" / "notes.db"
    db_path.parent.mkdir()
    _make_db(db_path)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notegraph.yaml").write_text(
        "storage:\n  db_path: index/notes.db\n", encoding="utf-8"
    )

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "one per chunk" in result.output


def test_status_embedding_model_mismatch_exits_1(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)
    monkeypatch.setenv("NOTEGRAPH_EMBEDDING_MODEL", "other/model")
    monkeypatch.setenv("NOTEGRAPH_EMBEDDING_DIM", "3")

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 1
    assert "mismatch" in result.output
    assert "storage.embedding_model" in result.output


def test_status_embedding_dim_mismatch_blocks_note(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notegraph.yaml").write_text(
        "storage:\n  embedding_model: test/embedding-3d\n  embedding_dim: 8\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["note", "a.md", "--db", str(db_path)])

    assert result.exit_code == 1
    assert "mismatch" in result.output


def test_status_matching_embedding_config(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)
    monkeypatch.setenv("NOTEGRAPH_EMBEDDING_MODEL", "test/embedding-3d")
    monkeypatch.setenv("NOTEGRAPH_EMBEDDING_DIM", "3")

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "test/embedding-3d" in result.output


def test_cli_db_flag_beats_config(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / ".notegraph.db"
    _make_db(db_path)
    monkeypatch.setenv("NOTEGRAPH_DB_PATH", str(tmp_path / "missing.db"))

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0
