"""Bounded typed-link graph expansion from semantic seed notes.

Breadth-first over a FIFO worklist of (path, hop, seed_distance):

  - seeds enter at hop 0 with their semantic distance
  - a dequeued node at hop h < max_hops follows its typed links (resolved
    through the target resolver) and, optionally, incoming links (backrefs)
  - neighbours enter at hop h + 1 and inherit the seed distance unchanged
  - a known node is re-queued only when its hop, seed distance or score improves

  graph_score = min_seed_distance + hop * hop_penalty   (lower ranks earlier)

Acceptance is append-only. A discovery (edge + neighbour) is kept whole or
dropped whole; every drop sets ``truncated``.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from notegraph.db.models import NoteMeta
from notegraph.db.repository import Repository
from notegraph.rag import limits
from notegraph.rag.resolver import guess_reference_targets_for_note, resolve_targets

logger = structlog.get_logger(__name__)

HOP_PENALTY = 0.15

OUTGOING = "outgoing"
INCOMING = "incoming"

# Canonical typed-link relation keys (frontmatter ontology).
DEFAULT_RELATIONS: tuple[str, ...] = (
    "instance_of",
    "part_of",
    "depends_on",
    "uses",
    "implements",
    "cites",
    "summarizes",
    "derived_from",
    "explains",
    "supports",
    "contradicts",
    "verifies",
    "blocks",
    "mitigates",
    "measures",
    "produces",
    "authored_by",
    "owned_by",
    "supersedes",
    "same_as",
)


@dataclass
class GraphParams:
    """Bounds and scope for one expansion.

    Attributes:
        relations: Relations to follow; empty → DEFAULT_RELATIONS.
        max_hops: Maximum hops from any seed (ceiling 3).
        max_notes: Node cap (ceiling 200).
        max_edges: Edge cap (ceiling 10 000).
        max_links_per_note: New edges followed per note per direction (ceiling 200).
        max_resolutions_per_target: Resolver limit per outgoing link (ceiling 20).
        include_incoming: Also follow backrefs into each visited note.
        path_prefix: Ignore every note outside this path prefix.
        hop_penalty: Score added per hop.
    """

    relations: Sequence[str] = ()
    max_hops: int = 1
    max_notes: int = 80
    max_edges: int = 2000
    max_links_per_note: int = 40
    max_resolutions_per_target: int = 5
    include_incoming: bool = False
    path_prefix: str | None = None
    hop_penalty: float = HOP_PENALTY

    def clamped(self) -> GraphParams:
        """Return a copy with every bound clamped to its ceiling and relations normalised."""
        return GraphParams(
            relations=normalize_relations(self.relations),
            max_hops=limits.clamp(self.max_hops, 0, limits.MAX_HOPS),
            max_notes=limits.clamp(self.max_notes, 1, limits.MAX_NOTES),
            max_edges=limits.clamp(self.max_edges, 1, limits.MAX_EDGES),
            max_links_per_note=limits.clamp(self.max_links_per_note, 1, limits.MAX_LINKS_PER_NOTE),
            max_resolutions_per_target=limits.clamp(
                self.max_resolutions_per_target, 1, limits.MAX_RESOLUTIONS_PER_TARGET
            ),
            include_incoming=bool(self.include_incoming),
            path_prefix=(self.path_prefix or "").strip() or None,
            hop_penalty=float(self.hop_penalty),
        )


@dataclass
class GraphNode:
    path: str
    hop: int
    min_seed_distance: float
    graph_score: float
    title: str | None = None
    summary: str | None = None
    entity: str | None = None
    layer: str | None = None
    status: str | None = None
    updated: str | None = None
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GraphEdge:
    direction: str  # outgoing | incoming
    rel: str
    target: str
    from_path: str
    to_path: str
    to_wikilink: str

    @property
    def key(self) -> tuple[str, str, str, str, str, str]:
        return (self.direction, self.rel, self.target, self.from_path, self.to_path, self.to_wikilink)

    @property
    def sort_key(self) -> tuple[str, str, str, str, str, str]:
        return (self.from_path, self.to_path, self.direction, self.rel, self.target, self.to_wikilink)


@dataclass
class GraphResult:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    truncated: bool = False


class MetaCache:
    """Request-scoped memo of Repository.get_note_meta (absence is cached too)."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo
        self._cache: dict[str, NoteMeta | None] = {}

    def get(self, path: str) -> NoteMeta | None:
        if path not in self._cache:
            self._cache[path] = self._repo.get_note_meta(path)
        return self._cache[path]

    def __len__(self) -> int:
        return len(self._cache)


def normalize_relations(relations: Iterable[str] | None) -> tuple[str, ...]:
    """Trim, drop blanks, dedupe (first wins); fall back to DEFAULT_RELATIONS."""
    raw = [r.strip() for r in relations or () if r and r.strip()]
    if not raw:
        raw = list(DEFAULT_RELATIONS)
    return tuple(dict.fromkeys(raw))


def expand_graph(
    repo: Repository,
    seeds: Sequence[tuple[str, float]],
    params: GraphParams | None = None,
    meta_cache: MetaCache | None = None,
) -> GraphResult:
    """Expand semantic seeds into a bounded, scored typed-link subgraph.

    Args:
        repo: Repository for link resolution and backref lookups.
        seeds: ``(path, distance)`` pairs in rank order.
        params: Expansion bounds; clamped to the engine ceilings.
        meta_cache: Shared per-request metadata cache. A fresh one is used if omitted.

    Returns:
        GraphResult with nodes ordered by (hop, graph_score, path) and edges
        by (from_path, to_path, direction, rel, target, to_wikilink).
    """
    if meta_cache is None:
        meta_cache = MetaCache(repo)
    expansion = _Expansion(repo, (params or GraphParams()).clamped(), meta_cache)
    return expansion.run(seeds)


class _Expansion:
    """Mutable state of one expand_graph call; never shared across calls."""

    def __init__(self, repo: Repository, params: GraphParams, meta_cache: MetaCache) -> None:
        self.repo = repo
        self.params = params
        self.meta = meta_cache
        self.relations = frozenset(params.relations)
        self.nodes: dict[str, GraphNode] = {}
        self.edges: dict[tuple[str, ...], GraphEdge] = {}
        self.queue: deque[tuple[str, int, float]] = deque()
        self.truncated = False

    def run(self, seeds: Sequence[tuple[str, float]]) -> GraphResult:
        for path, distance in seeds:
            if not self._in_scope(path):
                continue
            if path not in self.nodes and len(self.nodes) >= self.params.max_notes:
                self.truncated = True
                continue
            self._upsert_node(path, 0, float(distance))

        while self.queue:
            path, hop, seed_distance = self.queue.popleft()
            node = self.nodes[path]
            if hop > node.hop:
                continue  # stale entry; a shorter route was found after queueing
            if hop >= self.params.max_hops:
                continue

            meta = self.meta.get(path)
            if meta is None:
                continue
            self._expand_outgoing(meta, hop, seed_distance)
            if self.params.include_incoming:
                self._expand_incoming(meta, hop, seed_distance)

        if self.truncated:
            logger.info(
                "graph_expansion_truncated",
                nodes=len(self.nodes),
                edges=len(self.edges),
                max_notes=self.params.max_notes,
                max_edges=self.params.max_edges,
            )

        return GraphResult(
            nodes=sorted(self.nodes.values(), key=lambda n: (n.hop, n.graph_score, n.path)),
            edges=sorted(self.edges.values(), key=lambda e: e.sort_key),
            truncated=self.truncated,
        )

    # ------------------------------------------------------------------
    # Expansion steps
    # ------------------------------------------------------------------

    def _expand_outgoing(self, meta: NoteMeta, hop: int, seed_distance: float) -> None:
        followed = 0
        for link in meta.typed_links:
            if link.rel not in self.relations:
                continue
            resolved = resolve_targets(
                self.repo, link.to_target, self.params.max_resolutions_per_target
            )
            for match in resolved:
                if not self._in_scope(match.path):
                    continue
                edge = GraphEdge(
                    direction=OUTGOING,
                    rel=link.rel,
                    target=link.to_target,
                    from_path=meta.path,
                    to_path=match.path,
                    to_wikilink=link.to_wikilink,
                )
                if edge.key not in self.edges and followed >= self.params.max_links_per_note:
                    self.truncated = True
                    return
                if self._accept(edge, match.path, hop + 1, seed_distance):
                    followed += 1

    def _expand_incoming(self, meta: NoteMeta, hop: int, seed_distance: float) -> None:
        per_target_limit = min(1000, max(50, self.params.max_links_per_note * 5))
        followed = 0
        targets = guess_reference_targets_for_note(
            meta.path, meta.title, meta.note_id, meta.frontmatter
        )
        for target in targets:
            backrefs = self.repo.find_notes_by_typed_link(
                to_target=target, rels=self.params.relations, limit=per_target_limit
            )
            for backref in backrefs:
                if not self._in_scope(backref.from_path):
                    continue
                edge = GraphEdge(
                    direction=INCOMING,
                    rel=backref.rel,
                    target=backref.to_target,
                    from_path=backref.from_path,
                    to_path=meta.path,
                    to_wikilink=backref.to_wikilink,
                )
                if edge.key not in self.edges and followed >= self.params.max_links_per_note:
                    self.truncated = True
                    return
                if self._accept(edge, backref.from_path, hop + 1, seed_distance):
                    followed += 1

    def _accept(self, edge: GraphEdge, neighbor: str, hop: int, seed_distance: float) -> bool:
        """Record *edge* together with *neighbor*; True only if a new edge was added.

        A duplicate edge still relaxes the neighbour it leads to.
        """
        if edge.key in self.edges:
            self._upsert_node(neighbor, hop, seed_distance)
            return False
        if neighbor not in self.nodes and len(self.nodes) >= self.params.max_notes:
            self.truncated = True
            return False
        if len(self.edges) >= self.params.max_edges:
            self.truncated = True
            return False
        self.edges[edge.key] = edge
        self._upsert_node(neighbor, hop, seed_distance)
        return True

    def _upsert_node(self, path: str, hop: int, seed_distance: float) -> None:
        """Insert or relax a node; queue it when new or improved and hop <= max_hops."""
        penalty = self.params.hop_penalty
        node = self.nodes.get(path)
        if node is None:
            node = GraphNode(
                path=path,
                hop=hop,
                min_seed_distance=seed_distance,
                graph_score=seed_distance + hop * penalty,
            )
            meta = self.meta.get(path)
            if meta is not None:
                node.title = meta.title
                node.summary = meta.summary
                node.entity = meta.entity
                node.layer = meta.layer
                node.status = meta.status
                node.updated = meta.updated
                node.tags = list(meta.tags)
                node.keywords = list(meta.keywords)
            self.nodes[path] = node
            changed = True
        else:
            changed = False
            if hop < node.hop:
                node.hop = hop
                changed = True
            if seed_distance < node.min_seed_distance:
                node.min_seed_distance = seed_distance
                changed = True
            score = node.min_seed_distance + node.hop * penalty
            if score < node.graph_score:
                node.graph_score = score
                changed = True

        if changed and hop <= self.params.max_hops:
            self.queue.append((path, hop, seed_distance))

    def _in_scope(self, path: str) -> bool:
        prefix = self.params.path_prefix
        return not prefix or path.startswith(prefix)
