"""Tests for notegraph note / resolve / graph commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from notegraph.cli.main import app
from notegraph.db.connection import Database
from notegraph.db.models import File, Note, TypedLink
from notegraph.db.repository import Repository
from notegraph.db.schema import initialize

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _note(repo: Repository, path: str, title: str | None = None, links=(), tags=()) -> None:
    repo.upsert_file(File(path=path, mtime_ms=0, size_bytes=1, content_hash=f"h-{path}"))
    repo.upsert_note(Note(path=path, title=title, frontmatter={"kind": "test"}))
    repo.replace_note_tags(path, tags)
    repo.replace_typed_links(
        path,
        [TypedLink(rel, target, f"[[{target}]]", i) for i, (rel, target) in enumerate(links)],
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Alpha -supports-> Beta -cites-> Gamma; Delta -related-> Alpha."""
    path = tmp_path / ".notegraph.db"
    conn = Database(path).connect()
    initialize(conn, embedding_model="test/embedding-3d", embedding_dim=3)
    repo = Repository(conn)
    _note(repo, "Projects/Alpha.md", "Alpha", links=[("supports", "Beta")], tags=["core"])
    _note(repo, "Beta.md", "Beta", links=[("cites", "Gamma")])
    _note(repo, "Gamma.md", "Gamma")
    _note(repo, "Delta.md", "Delta", links=[("related", "Alpha")])
    conn.close()
    return path


def _graph(db_path: Path, *args: str) -> dict:
    result = runner.invoke(app, ["graph", "--db", str(db_path), *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


# ---------------------------------------------------------------------------
# notegraph note
# ---------------------------------------------------------------------------


def test_note_prints_metadata_json(db_path: Path) -> None:
    result = runner.invoke(app, ["note", "Projects/Alpha.md", "--db", str(db_path)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["title"] == "Alpha"
    assert payload["tags"] == ["core"]
    assert payload["frontmatter"] == {"kind": "test"}
    assert payload["typed_links"] == [
        {"rel": "supports", "to_target": "Beta", "to_wikilink": "[[Beta]]", "position": 0}
    ]


def test_note_not_found_exits_1(db_path: Path) -> None:
    result = runner.invoke(app, ["note", "Nope.md", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Note not found" in result.output


def test_note_no_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["note", "a.md", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No index database" in result.output


# ---------------------------------------------------------------------------
# notegraph resolve
# ---------------------------------------------------------------------------


def test_resolve_lists_matches(db_path: Path) -> None:
    result = runner.invoke(app, ["resolve", "Alpha", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "Projects/Alpha.md" in result.output
    assert "path" in result.output


def test_resolve_no_match(db_path: Path) -> None:
    result = runner.invoke(app, ["resolve", "Omega", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "No notes match" in result.output


# ---------------------------------------------------------------------------
# notegraph graph
# ---------------------------------------------------------------------------


def test_graph_one_hop_default(db_path: Path) -> None:
    payload = _graph(db_path, "--seed", "Projects/Alpha.md")

    assert payload["seeds"] == ["Projects/Alpha.md"]
    assert payload["truncated"] is False
    assert [n["path"] for n in payload["nodes"]] == ["Projects/Alpha.md", "Beta.md"]
    assert payload["nodes"][1]["hop"] == 1
    [edge] = payload["edges"]
    assert (edge["from_path"], edge["to_path"], edge["rel"]) == ("Projects/Alpha.md", "Beta.md", "supports")


def test_graph_max_hops(db_path: Path) -> None:
    payload = _graph(db_path, "-s", "Projects/Alpha.md", "--max-hops", "2")
    assert [n["path"] for n in payload["nodes"]] == ["Projects/Alpha.md", "Beta.md", "Gamma.md"]


def test_graph_relation_filter(db_path: Path) -> None:
    payload = _graph(db_path, "-s", "Projects/Alpha.md", "--rel", "cites", "--max-hops", "2")
    assert [n["path"] for n in payload["nodes"]] == ["Projects/Alpha.md"]


def test_graph_incoming(db_path: Path) -> None:
    payload = _graph(db_path, "-s", "Projects/Alpha.md", "--incoming", "-r", "related")
    assert [n["path"] for n in payload["nodes"]] == ["Projects/Alpha.md", "Delta.md"]
    assert payload["edges"][0]["direction"] == "incoming"


def test_graph_max_notes_truncates(db_path: Path) -> None:
    payload = _graph(db_path, "-s", "Projects/Alpha.md", "--max-notes", "1")
    assert [n["path"] for n in payload["nodes"]] == ["Projects/Alpha.md"]
    assert payload["edges"] == []
    assert payload["truncated"] is True


def test_graph_requires_seed(db_path: Path) -> None:
    result = runner.invoke(app, ["graph", "--db", str(db_path)])
    assert result.exit_code != 0
