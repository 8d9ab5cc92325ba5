"""Domain models for the notegraph database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class File:
    path: str
    mtime_ms: int
    size_bytes: int
    content_hash: str
    updated_at: str | None = None


@dataclass
class Note:
    """Structured metadata extracted from a file's frontmatter."""

    path: str
    note_id: str | None = None
    created: str | None = None
    title: str | None = None
    summary: str | None = None
    entity: str | None = None
    layer: str | None = None
    status: str | None = None
    updated: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict)


@dataclass
class Chunk:
    chunk_id: str
    path: str
    chunk_index: int
    content: str
    content_hash: str
    heading: str | None = None
    heading_path: list[str] = field(default_factory=list)
    updated_at: str | None = None


@dataclass
class TypedLink:
    """One outgoing typed link of a note; the owning path is the replace key."""

    rel: str
    to_target: str
    to_wikilink: str
    position: int


@dataclass
class TypedLinkBackref:
    from_path: str
    from_title: str | None
    rel: str
    to_target: str
    to_wikilink: str


@dataclass
class NoteMeta:
    """A note row joined with its tag/keyword/source sets and typed links."""

    path: str
    note_id: str | None = None
    created: str | None = None
    title: str | None = None
    summary: str | None = None
    entity: str | None = None
    layer: str | None = None
    status: str | None = None
    updated: str | None = None
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    frontmatter: dict[str, Any] = field(default_factory=dict)
    typed_links: list[TypedLink] = field(default_factory=list)


@dataclass
class SemanticHit:
    """A chunk returned by KNN search; lower distance = more similar."""

    chunk_id: str
    path: str
    chunk_index: int
    heading: str | None
    heading_path: list[str]
    content: str
    distance: float


@dataclass
class ChunkEmbedding:
    content_hash: str
    embedding: list[float]


@dataclass
class ResolvedTarget:
    path: str
    title: str | None
    matched_by: str  # path | note_id | title


@dataclass
class NoteFilters:
    """Metadata filters for Repository.search_notes()."""

    path_prefix: str | None = None
    title_query: str | None = None
    note_ids: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    layers: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    created_from: str | None = None
    created_to: str | None = None
    updated_from: str | None = None
    updated_to: str | None = None
    tags_any: list[str] = field(default_factory=list)
    tags_all: list[str] = field(default_factory=list)
    keywords_any: list[str] = field(default_factory=list)
    sources_any: list[str] = field(default_factory=list)
    order_by: str = "path"  # path | created | updated
    order_dir: str = "asc"  # asc | desc
    limit: int = 50


@dataclass
class SearchFilters:
    """Scope for semantic search, applied inside the KNN query (not post-filtered)."""

    path_prefix: str | None = None
    tags_any: list[str] = field(default_factory=list)
    tags_all: list[str] = field(default_factory=list)

    def normalized(self) -> SearchFilters:
        """Return a copy with trimmed strings and empty values dropped."""
        prefix = (self.path_prefix or "").strip() or None
        return SearchFilters(
            path_prefix=prefix,
            tags_any=_clean(self.tags_any),
            tags_all=_clean(self.tags_all),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.path_prefix or self.tags_any or self.tags_all)


def _clean(values: list[str] | None) -> list[str]:
    return [v.strip() for v in values or [] if v and v.strip()]
