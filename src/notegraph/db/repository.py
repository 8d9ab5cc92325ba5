"""Repository pattern for all notegraph database operations.

Single interface for: files, notes (+ tag/keyword/source sets), typed links,
chunks with their vec0 embeddings, KNN search, and resolver/backref lookups.

The vec0 table knows nothing about chunks. Every chunk owns exactly one vector
row through chunk_rowids, and every code path here that removes one side
removes the other in the same transaction.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager

import structlog

from notegraph.db.errors import IntegrityViolationError, StorageError
from notegraph.db.models import (
    Chunk,
    ChunkEmbedding,
    File,
    Note,
    NoteFilters,
    NoteMeta,
    SearchFilters,
    SemanticHit,
    TypedLink,
    TypedLinkBackref,
)
from notegraph.db.schema import META_EMBEDDING_DIM, now_iso
from notegraph.db.vectors import VEC_TABLE, embedding_to_json, parse_embedding

logger = structlog.get_logger(__name__)

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER is conservative on older builds.
DELETE_BATCH_SIZE = 200


class Repository:
    """Data access layer for all notegraph database entities.

    Wraps an open sqlite3.Connection (see notegraph.db.schema.initialize).
    The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection, embedding_dim: int | None = None) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised.
            embedding_dim: Expected vector dimension. Read from db_meta when omitted.
        """
        self._conn = conn
        self._embedding_dim = embedding_dim

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    @property
    def embedding_dim(self) -> int:
        if self._embedding_dim is None:
            row = self._conn.execute(
                "SELECT value FROM db_meta WHERE key = ?", (META_EMBEDDING_DIM,)
            ).fetchone()
            if row is None:
                raise StorageError("Index database has no recorded embedding dimension.")
            self._embedding_dim = int(row["value"])
        return self._embedding_dim

    @contextmanager
    def _atomic(self) -> Iterator[sqlite3.Connection]:
        """Run a multi-statement write as one transaction; FK failures become integrity errors."""
        try:
            with self._conn:
                yield self._conn
        except sqlite3.IntegrityError as exc:
            raise IntegrityViolationError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upsert_file(self, file: File) -> None:
        """Insert or update a file row keyed by path."""
        with self._atomic() as conn:
            conn.execute(
                """
                INSERT INTO files (path, mtime_ms, size_bytes, content_hash, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    mtime_ms = excluded.mtime_ms,
                    size_bytes = excluded.size_bytes,
                    content_hash = excluded.content_hash,
                    updated_at = excluded.updated_at
                """,
                (file.path, int(file.mtime_ms), file.size_bytes, file.content_hash, now_iso()),
            )

    def get_file(self, path: str) -> File | None:
        row = self._conn.execute(
            "SELECT path, mtime_ms, size_bytes, content_hash, updated_at FROM files WHERE path = ?",
            (path,),
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_file_hash(self, path: str) -> str | None:
        """Return the stored content hash for *path*, or None if the file is unknown."""
        row = self._conn.execute(
            "SELECT content_hash FROM files WHERE path = ?", (path,)
        ).fetchone()
        return row["content_hash"] if row else None

    def list_file_paths(self) -> list[str]:
        rows = self._conn.execute("SELECT path FROM files ORDER BY path ASC").fetchall()
        return [r["path"] for r in rows]

    def delete_file_by_path(self, path: str) -> None:
        """Delete a file with its chunks, vectors, note metadata and typed links.

        Vector rows are removed explicitly; everything else cascades.
        """
        with self._atomic() as conn:
            self._delete_vectors_where(conn, "c.path = ?", (path,))
            conn.execute("DELETE FROM files WHERE path = ?", (path,))

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def upsert_note(self, note: Note) -> None:
        """Insert or update note metadata keyed by path. The file row must exist.

        Raises:
            IntegrityViolationError: If no file row exists for ``note.path``.
        """
        with self._atomic() as conn:
            conn.execute(
                """
                INSERT INTO notes (
                    path, note_id, created, title, summary,
                    entity, layer, status, updated,
                    frontmatter_json, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    note_id = excluded.note_id,
                    created = excluded.created,
                    title = excluded.title,
                    summary = excluded.summary,
                    entity = excluded.entity,
                    layer = excluded.layer,
                    status = excluded.status,
                    updated = excluded.updated,
                    frontmatter_json = excluded.frontmatter_json,
                    updated_at = excluded.updated_at
                """,
                (
                    note.path,
                    note.note_id,
                    note.created,
                    note.title,
                    note.summary,
                    note.entity,
                    note.layer,
                    note.status,
                    note.updated,
                    json.dumps(note.frontmatter, default=str, sort_keys=True),
                    now_iso(),
                ),
            )

    def replace_note_tags(self, path: str, tags: Iterable[str]) -> None:
        self._replace_note_values("note_tags", "tag", path, tags)

    def replace_note_keywords(self, path: str, keywords: Iterable[str]) -> None:
        self._replace_note_values("note_keywords", "keyword", path, keywords)

    def replace_note_sources(self, path: str, sources: Iterable[str]) -> None:
        self._replace_note_values("note_sources", "source", path, sources)

    def _replace_note_values(
        self, table: str, column: str, path: str, values: Iterable[str]
    ) -> None:
        """Delete-all-then-insert-all under one transaction."""
        unique = list(dict.fromkeys(values))
        with self._atomic() as conn:
            conn.execute(f"DELETE FROM {table} WHERE path = ?", (path,))  # noqa: S608
            conn.executemany(
                f"INSERT INTO {table} (path, {column}) VALUES (?, ?)",  # noqa: S608
                [(path, v) for v in unique],
            )

    def get_note_meta(self, path: str) -> NoteMeta | None:
        """Return the note with its sets and typed links, or None if absent."""
        row = self._conn.execute("SELECT * FROM notes WHERE path = ?", (path,)).fetchone()
        if row is None:
            return None

        tags = self._conn.execute(
            "SELECT tag FROM note_tags WHERE path = ? ORDER BY tag", (path,)
        ).fetchall()
        keywords = self._conn.execute(
            "SELECT keyword FROM note_keywords WHERE path = ? ORDER BY keyword", (path,)
        ).fetchall()
        sources = self._conn.execute(
            "SELECT source FROM note_sources WHERE path = ? ORDER BY source", (path,)
        ).fetchall()

        meta = _row_to_note_meta(row)
        meta.tags = [r["tag"] for r in tags]
        meta.keywords = [r["keyword"] for r in keywords]
        meta.sources = [r["source"] for r in sources]
        meta.frontmatter = _safe_json_object(row["frontmatter_json"])
        meta.typed_links = self.list_typed_links(path)
        return meta

    def search_notes(self, filters: NoteFilters | None = None) -> list[NoteMeta]:
        """Metadata-only note search. Results carry tags/keywords/sources, no links."""
        f = filters or NoteFilters()
        where: list[str] = []
        params: list[object] = []

        if f.path_prefix and f.path_prefix.strip():
            where.append("notes.path LIKE ? ESCAPE '\\'")
            params.append(like_prefix(f.path_prefix.strip()))
        if f.title_query:
            where.append("notes.title LIKE ? ESCAPE '\\'")
            params.append(f"%{escape_like(f.title_query)}%")

        for column, values in (
            ("note_id", f.note_ids),
            ("entity", f.entities),
            ("layer", f.layers),
            ("status", f.statuses),
        ):
            values = [v for v in values if v]
            if values:
                where.append(f"notes.{column} IN ({_placeholders(values)})")
                params.extend(values)

        for column, op, value in (
            ("created", ">=", f.created_from),
            ("created", "<=", f.created_to),
            ("updated", ">=", f.updated_from),
            ("updated", "<=", f.updated_to),
        ):
            if value:
                where.append(f"notes.{column} IS NOT NULL AND notes.{column} {op} ?")
                params.append(value)

        tags_any = [t for t in f.tags_any if t]
        if tags_any:
            where.append(
                "EXISTS (SELECT 1 FROM note_tags t WHERE t.path = notes.path "
                f"AND t.tag IN ({_placeholders(tags_any)}))"
            )
            params.extend(tags_any)
        for tag in (t for t in f.tags_all if t):
            where.append("EXISTS (SELECT 1 FROM note_tags t WHERE t.path = notes.path AND t.tag = ?)")
            params.append(tag)
        keywords_any = [k for k in f.keywords_any if k]
        if keywords_any:
            where.append(
                "EXISTS (SELECT 1 FROM note_keywords k WHERE k.path = notes.path "
                f"AND k.keyword IN ({_placeholders(keywords_any)}))"
            )
            params.extend(keywords_any)
        sources_any = [s for s in f.sources_any if s]
        if sources_any:
            where.append(
                "EXISTS (SELECT 1 FROM note_sources s WHERE s.path = notes.path "
                f"AND s.source IN ({_placeholders(sources_any)}))"
            )
            params.extend(sources_any)

        direction = "DESC" if f.order_dir == "desc" else "ASC"
        if f.order_by in ("created", "updated"):
            order_sql = f"notes.{f.order_by} IS NULL, notes.{f.order_by} {direction}, notes.path"
        else:
            order_sql = f"notes.path {direction}"

        limit = min(max(1, f.limit), 500)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        rows = self._conn.execute(
            f"SELECT * FROM notes {where_sql} ORDER BY {order_sql} LIMIT ?",  # noqa: S608
            (*params, limit),
        ).fetchall()
        if not rows:
            return []

        results = [_row_to_note_meta(r) for r in rows]
        paths = [m.path for m in results]
        tags = self._values_by_path("note_tags", "tag", paths)
        keywords = self._values_by_path("note_keywords", "keyword", paths)
        sources = self._values_by_path("note_sources", "source", paths)
        for meta in results:
            meta.tags = tags.get(meta.path, [])
            meta.keywords = keywords.get(meta.path, [])
            meta.sources = sources.get(meta.path, [])
        return results

    def _values_by_path(self, table: str, column: str, paths: list[str]) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        rows = self._conn.execute(
            f"SELECT path, {column} AS value FROM {table} "  # noqa: S608
            f"WHERE path IN ({_placeholders(paths)}) ORDER BY {column}",
            paths,
        ).fetchall()
        for r in rows:
            out.setdefault(r["path"], []).append(r["value"])
        return out

    def list_tags(self, limit: int = 200) -> list[tuple[str, int]]:
        """Return [(tag, note_count), ...] ordered by count desc, tag asc."""
        return self._facet("note_tags", "tag", limit)

    def list_keywords(self, limit: int = 200) -> list[tuple[str, int]]:
        """Return [(keyword, note_count), ...] ordered by count desc, keyword asc."""
        return self._facet("note_keywords", "keyword", limit)

    def _facet(self, table: str, column: str, limit: int) -> list[tuple[str, int]]:
        limit = min(max(1, limit), 5000)
        rows = self._conn.execute(
            f"SELECT {column} AS value, COUNT(*) AS count FROM {table} "  # noqa: S608
            f"GROUP BY {column} ORDER BY count DESC, {column} ASC LIMIT ?",
            (limit,),
        ).fetchall()
        return [(r["value"], r["count"]) for r in rows]

    # ------------------------------------------------------------------
    # Typed links
    # ------------------------------------------------------------------

    def replace_typed_links(self, from_path: str, links: Sequence[TypedLink]) -> None:
        """Replace every typed link of *from_path* in one transaction.

        Raises:
            IntegrityViolationError: If *from_path* has no note row.
        """
        created_at = now_iso()
        with self._atomic() as conn:
            conn.execute("DELETE FROM typed_links WHERE from_path = ?", (from_path,))
            conn.executemany(
                """
                INSERT INTO typed_links (from_path, rel, to_target, to_wikilink, position, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (from_path, link.rel, link.to_target, link.to_wikilink, link.position, created_at)
                    for link in links
                ],
            )

    def list_typed_links(self, from_path: str) -> list[TypedLink]:
        rows = self._conn.execute(
            """
            SELECT rel, to_target, to_wikilink, position
            FROM typed_links WHERE from_path = ?
            ORDER BY rel, position
            """,
            (from_path,),
        ).fetchall()
        return [
            TypedLink(
                rel=r["rel"],
                to_target=r["to_target"],
                to_wikilink=r["to_wikilink"],
                position=r["position"],
            )
            for r in rows
        ]

    def find_notes_by_typed_link(
        self,
        to_target: str | None = None,
        rel: str | None = None,
        rels: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[TypedLinkBackref]:
        """Backref lookup: notes whose typed links point at *to_target*.

        Ordered by (rel, to_target, from_path, position); limit clamped to [1, 1000].
        """
        where: list[str] = []
        params: list[object] = []
        if rel:
            where.append("tl.rel = ?")
            params.append(rel)
        if to_target:
            where.append("tl.to_target = ?")
            params.append(to_target)
        rel_list = [r.strip() for r in rels or [] if r and r.strip()]
        if rel_list:
            where.append(f"tl.rel IN ({_placeholders(rel_list)})")
            params.extend(rel_list)

        limit = min(max(1, limit), 1000)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        rows = self._conn.execute(
            f"""
            SELECT
                tl.from_path AS from_path,
                n.title AS from_title,
                tl.rel AS rel,
                tl.to_target AS to_target,
                tl.to_wikilink AS to_wikilink
            FROM typed_links tl
            JOIN notes n ON n.path = tl.from_path
            {where_sql}
            ORDER BY tl.rel, tl.to_target, tl.from_path, tl.position
            LIMIT ?
            """,  # noqa: S608
            (*params, limit),
        ).fetchall()
        return [
            TypedLinkBackref(
                from_path=r["from_path"],
                from_title=r["from_title"],
                rel=r["rel"],
                to_target=r["to_target"],
                to_wikilink=r["to_wikilink"],
            )
            for r in rows
        ]

    def list_typed_link_rels(
        self, path_prefix: str | None = None, limit: int = 200, order_by: str = "count_desc"
    ) -> list[tuple[str, int]]:
        """Return [(rel, link_count), ...]; order_by is 'count_desc' or 'rel_asc'."""
        params: list[object] = []
        where_sql = ""
        if path_prefix and path_prefix.strip():
            where_sql = "WHERE from_path LIKE ? ESCAPE '\\'"
            params.append(like_prefix(path_prefix.strip()))
        order_sql = "rel ASC, count DESC" if order_by == "rel_asc" else "count DESC, rel ASC"
        limit = min(max(1, limit), 5000)
        rows = self._conn.execute(
            f"SELECT rel, COUNT(*) AS count FROM typed_links {where_sql} "  # noqa: S608
            f"GROUP BY rel ORDER BY {order_sql} LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [(r["rel"], r["count"]) for r in rows]

    # ------------------------------------------------------------------
    # Resolver lookups
    # ------------------------------------------------------------------

    def notes_by_path(self, target_with_ext: str, limit: int) -> list[tuple[str, str | None]]:
        """Notes whose path equals *target_with_ext* or ends with ``/<target_with_ext>``."""
        rows = self._conn.execute(
            """
            SELECT path, title FROM notes
            WHERE path = ? OR path LIKE ? ESCAPE '\\'
            ORDER BY path
            LIMIT ?
            """,
            (target_with_ext, f"%/{escape_like(target_with_ext)}", limit),
        ).fetchall()
        return [(r["path"], r["title"]) for r in rows]

    def notes_by_note_id(self, note_id: str, limit: int) -> list[tuple[str, str | None]]:
        rows = self._conn.execute(
            "SELECT path, title FROM notes WHERE note_id = ? ORDER BY path LIMIT ?",
            (note_id, limit),
        ).fetchall()
        return [(r["path"], r["title"]) for r in rows]

    def notes_by_title(self, title: str, limit: int) -> list[tuple[str, str | None]]:
        rows = self._conn.execute(
            "SELECT path, title FROM notes WHERE title = ? ORDER BY path LIMIT ?",
            (title, limit),
        ).fetchall()
        return [(r["path"], r["title"]) for r in rows]

    # ------------------------------------------------------------------
    # Chunks + vec embeddings
    # ------------------------------------------------------------------

    def insert_chunk_with_embedding(self, chunk: Chunk, embedding: Sequence[float]) -> int:
        """Insert a chunk, its vector, and the mapping row atomically.

        Returns:
            The vec0 rowid allocated for the embedding.

        Raises:
            IntegrityViolationError: On a dimension mismatch, a missing file row,
                a duplicate chunk_id, or a vector payload the index rejects.
                Nothing is written in that case.
        """
        if len(embedding) != self.embedding_dim:
            raise IntegrityViolationError(
                f"Embedding dimension mismatch for chunk '{chunk.chunk_id}': "
                f"expected {self.embedding_dim}, got {len(embedding)}"
            )
        if chunk.chunk_index < 0:
            raise IntegrityViolationError(
                f"chunk_index must be >= 0 for chunk '{chunk.chunk_id}', got {chunk.chunk_index}"
            )
        try:
            payload = embedding_to_json(embedding)
        except (TypeError, ValueError) as exc:
            raise IntegrityViolationError(
                f"Unusable embedding for chunk '{chunk.chunk_id}': {exc}"
            ) from exc

        with self._atomic() as conn:
            conn.execute(
                """
                INSERT INTO chunks (
                    chunk_id, path, chunk_index, heading, heading_path_json,
                    content, content_hash, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.chunk_id,
                    chunk.path,
                    int(chunk.chunk_index),
                    chunk.heading,
                    json.dumps(list(chunk.heading_path)),
                    chunk.content,
                    chunk.content_hash,
                    now_iso(),
                ),
            )
            # The mapping row allocates the rowid; vec0 gets it explicitly.
            cur = conn.execute("INSERT INTO chunk_rowids (chunk_id) VALUES (?)", (chunk.chunk_id,))
            vec_rowid = cur.lastrowid
            try:
                conn.execute(
                    f"INSERT INTO {VEC_TABLE}(rowid, embedding) VALUES (?, ?)",
                    (vec_rowid, payload),
                )
            except sqlite3.OperationalError as exc:
                raise sqlite3.IntegrityError(f"vector index rejected embedding: {exc}") from exc
        return vec_rowid

    def update_chunk_metadata(self, chunk: Chunk) -> None:
        """Update a stored chunk's position/heading/content, keeping its embedding."""
        with self._atomic() as conn:
            conn.execute(
                """
                UPDATE chunks SET
                    path = ?,
                    chunk_index = ?,
                    heading = ?,
                    heading_path_json = ?,
                    content = ?,
                    content_hash = ?,
                    updated_at = ?
                WHERE chunk_id = ?
                """,
                (
                    chunk.path,
                    int(chunk.chunk_index),
                    chunk.heading,
                    json.dumps(list(chunk.heading_path)),
                    chunk.content,
                    chunk.content_hash,
                    now_iso(),
                    chunk.chunk_id,
                ),
            )

    def list_chunk_ids_by_path(self, path: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT chunk_id FROM chunks WHERE path = ? ORDER BY chunk_index, chunk_id", (path,)
        ).fetchall()
        return [r["chunk_id"] for r in rows]

    def list_chunks_by_path_and_indices(self, path: str, indices: Iterable[int]) -> list[Chunk]:
        """Fetch chunks of *path* at *indices* (negatives dropped), in ascending chunk_index."""
        wanted = list(dict.fromkeys(int(i) for i in indices if int(i) >= 0))
        if not wanted:
            return []
        rows = self._conn.execute(
            f"""
            SELECT chunk_id, path, chunk_index, heading, heading_path_json,
                   content, content_hash, updated_at
            FROM chunks
            WHERE path = ? AND chunk_index IN ({_placeholders(wanted)})
            ORDER BY chunk_index ASC, chunk_id ASC
            """,  # noqa: S608
            (path, *wanted),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def list_chunk_embeddings_by_path(self, path: str) -> list[ChunkEmbedding]:
        """Return one (content_hash, embedding) per distinct content hash of *path*.

        First occurrence in insertion order wins. Rows whose stored vector cannot
        be decoded are skipped.
        """
        rows = self._conn.execute(
            f"""
            SELECT c.chunk_id AS chunk_id, c.content_hash AS content_hash, e.embedding AS embedding
            FROM chunks c
            JOIN chunk_rowids r ON r.chunk_id = c.chunk_id
            JOIN {VEC_TABLE} e ON e.rowid = r.vec_rowid
            WHERE c.path = ?
            ORDER BY r.vec_rowid
            """,  # noqa: S608
            (path,),
        ).fetchall()

        out: list[ChunkEmbedding] = []
        seen: set[str] = set()
        for row in rows:
            key = row["content_hash"] or ""
            if not key or key in seen:
                continue
            parsed = parse_embedding(row["embedding"])
            if parsed is None:
                logger.warning("malformed_embedding_skipped", path=path, chunk_id=row["chunk_id"])
                continue
            seen.add(key)
            out.append(ChunkEmbedding(content_hash=key, embedding=parsed))
        return out

    def delete_chunks_by_path(self, path: str) -> int:
        """Delete every chunk of *path* and its vector row in one transaction.

        Returns the number of chunks deleted.
        """
        with self._atomic() as conn:
            self._delete_vectors_where(conn, "c.path = ?", (path,))
            deleted = conn.execute("DELETE FROM chunks WHERE path = ?", (path,)).rowcount
        logger.debug("chunks_deleted", path=path, count=deleted)
        return deleted

    def delete_chunks_by_ids(self, chunk_ids: Iterable[str]) -> int:
        """Delete chunks (and their vector rows) by id.

        Ids are processed in batches of DELETE_BATCH_SIZE; each batch is atomic,
        the whole call is not.

        Returns the number of chunks deleted.
        """
        ids = list(dict.fromkeys(i.strip() for i in chunk_ids if i and i.strip()))
        total = 0
        for start in range(0, len(ids), DELETE_BATCH_SIZE):
            batch = ids[start : start + DELETE_BATCH_SIZE]
            placeholders = _placeholders(batch)
            with self._atomic() as conn:
                self._delete_vectors_where(conn, f"c.chunk_id IN ({placeholders})", batch)
                total += conn.execute(
                    f"DELETE FROM chunks WHERE chunk_id IN ({placeholders})",  # noqa: S608
                    batch,
                ).rowcount
        if ids:
            logger.debug("chunks_deleted", requested=len(ids), count=total)
        return total

    @staticmethod
    def _delete_vectors_where(
        conn: sqlite3.Connection, chunk_where: str, params: Sequence[object]
    ) -> None:
        """Delete vec0 rows owned by the chunks matching *chunk_where*.

        Must run inside the transaction that deletes those chunks; the
        mapping rows then go with the chunks via ON DELETE CASCADE.
        """
        rowids = [
            r[0]
            for r in conn.execute(
                f"""
                SELECT r.vec_rowid FROM chunk_rowids r
                JOIN chunks c ON c.chunk_id = r.chunk_id
                WHERE {chunk_where}
                """,  # noqa: S608
                params,
            ).fetchall()
        ]
        for start in range(0, len(rowids), DELETE_BATCH_SIZE):
            batch = rowids[start : start + DELETE_BATCH_SIZE]
            conn.execute(
                f"DELETE FROM {VEC_TABLE} WHERE rowid IN ({_placeholders(batch)})",  # noqa: S608
                batch,
            )

    # ------------------------------------------------------------------
    # KNN search
    # ------------------------------------------------------------------

    def semantic_search(
        self,
        query_embedding: Sequence[float],
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[SemanticHit]:
        """K-nearest-neighbour search over chunk embeddings, nearest first.

        Filters restrict the candidate rowids inside the KNN query, so up to
        *top_k* matching chunks come back. Equal distances among the returned
        hits are ordered by vector rowid; which of several tied rows make the
        *top_k* cut is decided by vec0.

        Raises:
            ValueError: If the query embedding has the wrong dimension.
        """
        if len(query_embedding) != self.embedding_dim:
            raise ValueError(
                f"query embedding has dimension {len(query_embedding)}, "
                f"index expects {self.embedding_dim}"
            )
        k = max(1, int(top_k))
        scope = (filters or SearchFilters()).normalized()

        candidate_where: list[str] = []
        candidate_params: list[object] = []
        if scope.path_prefix:
            candidate_where.append("c.path LIKE ? ESCAPE '\\'")
            candidate_params.append(like_prefix(scope.path_prefix))
        if scope.tags_any:
            candidate_where.append(
                "EXISTS (SELECT 1 FROM note_tags t WHERE t.path = c.path "
                f"AND t.tag IN ({_placeholders(scope.tags_any)}))"
            )
            candidate_params.extend(scope.tags_any)
        for tag in scope.tags_all:
            candidate_where.append(
                "EXISTS (SELECT 1 FROM note_tags t WHERE t.path = c.path AND t.tag = ?)"
            )
            candidate_params.append(tag)

        candidates_cte = ""
        candidate_filter = ""
        if candidate_where:
            candidates_cte = f"""
            candidates AS (
                SELECT r.vec_rowid AS rowid
                FROM chunks c
                JOIN chunk_rowids r ON r.chunk_id = c.chunk_id
                WHERE {' AND '.join(candidate_where)}
            ),"""
            candidate_filter = "AND rowid IN (SELECT rowid FROM candidates)"

        # vec0 needs `k = ?` on the virtual table itself and accepts a single
        # ORDER BY distance. MATERIALIZED stops SQLite from flattening the KNN
        # CTE into the outer join and its ORDER BY.
        sql = f"""
            WITH {candidates_cte}
            matches AS MATERIALIZED (
                SELECT rowid, distance
                FROM {VEC_TABLE}
                WHERE embedding MATCH ?
                  AND k = ?
                  {candidate_filter}
                ORDER BY distance
            )
            SELECT
                c.chunk_id AS chunk_id,
                c.path AS path,
                c.chunk_index AS chunk_index,
                c.heading AS heading,
                c.heading_path_json AS heading_path_json,
                c.content AS content,
                m.distance AS distance
            FROM matches m
            JOIN chunk_rowids r ON r.vec_rowid = m.rowid
            JOIN chunks c ON c.chunk_id = r.chunk_id
            ORDER BY m.distance ASC, m.rowid ASC
        """  # noqa: S608
        rows = self._conn.execute(
            sql, (*candidate_params, embedding_to_json(query_embedding), k)
        ).fetchall()

        return [
            SemanticHit(
                chunk_id=r["chunk_id"],
                path=r["path"],
                chunk_index=r["chunk_index"],
                heading=r["heading"],
                heading_path=_safe_json_list(r["heading_path_json"]),
                content=r["content"],
                distance=float(r["distance"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Counters / metadata
    # ------------------------------------------------------------------

    def count_files(self) -> int:
        return self._count("files")

    def count_notes(self) -> int:
        return self._count("notes")

    def count_chunks(self, path: str | None = None) -> int:
        if path is not None:
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE path = ?", (path,)
            ).fetchone()[0]
        return self._count("chunks")

    def count_vectors(self) -> int:
        return self._count(VEC_TABLE)

    def count_mappings(self) -> int:
        return self._count("chunk_rowids")

    def count_typed_links(self) -> int:
        return self._count("typed_links")

    def _count(self, table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608

    def get_db_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM db_meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None


# ------------------------------------------------------------------
# SQL helpers
# ------------------------------------------------------------------


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so *value* matches literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def like_prefix(prefix: str) -> str:
    return f"{escape_like(prefix)}%"


def _placeholders(values: Sequence[object]) -> str:
    return ",".join("?" * len(values))


def _safe_json_list(raw: str | None) -> list[str]:
    try:
        value = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


def _safe_json_object(raw: str | None) -> dict:
    try:
        value = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        path=row["path"],
        mtime_ms=row["mtime_ms"],
        size_bytes=row["size_bytes"],
        content_hash=row["content_hash"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        chunk_id=row["chunk_id"],
        path=row["path"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        content_hash=row["content_hash"],
        heading=row["heading"],
        heading_path=_safe_json_list(row["heading_path_json"]),
        updated_at=row["updated_at"],
    )


def _row_to_note_meta(row: sqlite3.Row) -> NoteMeta:
    return NoteMeta(
        path=row["path"],
        note_id=row["note_id"],
        created=row["created"],
        title=row["title"],
        summary=row["summary"],
        entity=row["entity"],
        layer=row["layer"],
        status=row["status"],
        updated=row["updated"],
    )
