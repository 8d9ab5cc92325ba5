"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from notegraph.db.connection import Database
from notegraph.db.models import Chunk, File, Note, TypedLink
from notegraph.db.repository import Repository
from notegraph.db.schema import initialize

TEST_MODEL = "test/embedding-3d"
TEST_DIM = 3


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized for 3-dim embeddings, closed after test."""
    db = Database(tmp_path / ".notegraph.db")
    conn = db.connect()
    initialize(conn, embedding_model=TEST_MODEL, embedding_dim=TEST_DIM)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def add_note(repo):
    """Index one note: file row, optional metadata, typed links, chunks with embeddings.

    ``chunks`` is a list of ``(content, embedding)``; chunk ids are ``<path>#<index>``.
    ``links`` is a list of ``(rel, target)``.
    """

    def _add(
        path,
        title=None,
        note_id=None,
        chunks=(),
        links=(),
        tags=(),
        frontmatter=None,
        with_meta=True,
    ):
        repo.upsert_file(File(path=path, mtime_ms=0, size_bytes=100, content_hash=f"h-{path}"))
        if with_meta:
            repo.upsert_note(
                Note(path=path, note_id=note_id, title=title, frontmatter=frontmatter or {})
            )
            repo.replace_note_tags(path, tags)
            repo.replace_typed_links(
                path,
                [
                    TypedLink(rel=rel, to_target=target, to_wikilink=f"[[{target}]]", position=i)
                    for i, (rel, target) in enumerate(links)
                ],
            )
        for i, (content, embedding) in enumerate(chunks):
            repo.insert_chunk_with_embedding(
                Chunk(
                    chunk_id=f"{path}#{i}",
                    path=path,
                    chunk_index=i,
                    content=content,
                    content_hash=f"c-{path}-{i}",
                ),
                embedding,
            )
        return path

    return _add
