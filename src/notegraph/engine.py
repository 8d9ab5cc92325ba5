"""Retrieval engine facade.

One object per open index. Every caller-supplied bound passes through
notegraph.rag.limits before it reaches the storage layer; defaults come from
the loaded NotegraphConfig.

Exposed operations:
  semantic_search, resolve_targets, expand_graph, stitch_evidence,
  get_note_metadata, plus the composed flows get_context and
  get_graph_context.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from notegraph.config import NotegraphConfig
from notegraph.db.models import NoteMeta, ResolvedTarget, SearchFilters, SemanticHit
from notegraph.db.repository import Repository
from notegraph.rag import limits
from notegraph.rag.assembler import (
    SNIPPET_CHARS,
    CompositionParams,
    ResultRow,
    StitchResult,
    compose_result_rows,
    stitch,
)
from notegraph.rag.graph import GraphParams, GraphResult, MetaCache, expand_graph
from notegraph.rag.resolver import resolve_targets
from notegraph.rag.retriever import OverfetchPolicy, plan_retrieval, select_seeds

logger = structlog.get_logger(__name__)


@dataclass
class ContextResult:
    """Ranked per-note results for one query, with evidence on the leading rows."""

    desired_notes: int
    used_k: int
    composition: CompositionParams
    results: list[ResultRow] = field(default_factory=list)


@dataclass
class Snippet:
    distance: float
    heading: str | None
    heading_path: list[str]
    snippet: str


@dataclass
class SeedNote:
    path: str
    distance: float
    heading: str | None
    heading_path: list[str]
    snippet: str


@dataclass
class ContextNote:
    """A graph node re-ranked by its own semantic snippets."""

    path: str
    hop: int
    score: float
    title: str | None
    summary: str | None
    entity: str | None
    layer: str | None
    status: str | None
    updated: str | None
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    snippets: list[Snippet] = field(default_factory=list)


@dataclass
class GraphContext:
    params: GraphParams
    used_seed_k: int
    used_context_k: int
    seeds: list[SeedNote] = field(default_factory=list)
    graph: GraphResult = field(default_factory=GraphResult)
    context_notes: list[ContextNote] = field(default_factory=list)


class RetrievalEngine:
    """Hybrid vector + typed-link retrieval over one index database."""

    def __init__(self, repo: Repository, config: NotegraphConfig | None = None) -> None:
        self.repo = repo
        self.config = config or NotegraphConfig()

    @property
    def overfetch_policy(self) -> OverfetchPolicy:
        r = self.config.retrieval
        return OverfetchPolicy(
            min_k=r.overfetch_min_k,
            per_note=r.overfetch_per_note,
            max_k=r.overfetch_max_k,
            max_attempts=r.overfetch_max_attempts,
            growth=r.overfetch_growth,
        )

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def semantic_search(
        self,
        query_embedding: Sequence[float],
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[SemanticHit]:
        """Ranked chunk hits, nearest first; *top_k* clamped to [1, 2000]."""
        return self.repo.semantic_search(
            query_embedding, limits.clamp(top_k, 1, limits.MAX_TOP_K), filters
        )

    def resolve_targets(self, target: str, limit: int = 20) -> list[ResolvedTarget]:
        return resolve_targets(self.repo, target, limit)

    def expand_graph(
        self,
        seeds: Sequence[tuple[str, float]],
        relations: Sequence[str] | None = None,
        max_hops: int | None = None,
        max_notes: int | None = None,
        max_edges: int | None = None,
        max_links_per_note: int | None = None,
        include_incoming: bool | None = None,
        max_resolutions_per_target: int | None = None,
        path_prefix: str | None = None,
        meta_cache: MetaCache | None = None,
    ) -> GraphResult:
        """Expand ``(path, distance)`` seeds; unset bounds fall back to config."""
        params = self._graph_params(
            relations,
            max_hops,
            max_notes,
            max_edges,
            max_links_per_note,
            include_incoming,
            max_resolutions_per_target,
            path_prefix,
        )
        return expand_graph(self.repo, seeds, params, meta_cache)

    def stitch_evidence(self, chunks: Sequence, max_chars: int) -> StitchResult:
        """Stitch *chunks* (objects with chunk_id/content) within *max_chars* (≤ 20 000)."""
        return stitch(chunks, limits.clamp(max_chars, 1, limits.MAX_EVIDENCE_CHARS))

    def get_note_metadata(self, path: str) -> NoteMeta | None:
        return self.repo.get_note_meta(path)

    # ------------------------------------------------------------------
    # Composed flows
    # ------------------------------------------------------------------

    def get_context(
        self,
        query_embedding: Sequence[float],
        top_k: int | None = None,
        filters: SearchFilters | None = None,
        expand_top_k: int | None = None,
        hit_chunks_per_note: int | None = None,
        neighbor_window: int | None = None,
        max_evidence_chars_per_note: int | None = None,
    ) -> ContextResult:
        """Top notes for a query embedding, with stitched evidence for the leading ones.

        Args:
            query_embedding: Query vector in the index's embedding space.
            top_k: Distinct notes wanted (1-50).
            filters: Path prefix / tag scope applied inside the KNN query.
            expand_top_k: Leading notes that receive evidence text.
            hit_chunks_per_note: Hits kept per note (1-5).
            neighbor_window: Chunks on each side of the best hit (0-3).
            max_evidence_chars_per_note: Per-note evidence budget (200-20 000).

        Returns:
            ContextResult with one row per note, best first.
        """
        r = self.config.retrieval
        e = self.config.evidence
        plan = plan_retrieval(
            self.repo,
            query_embedding,
            desired_notes=_pick(top_k, r.top_k),
            hit_chunks_per_note=_pick(hit_chunks_per_note, r.hit_chunks_per_note),
            filters=filters,
            policy=self.overfetch_policy,
        )
        composition = CompositionParams(
            expand_top_k=_pick(expand_top_k, e.expand_top_k),
            neighbor_window=_pick(neighbor_window, e.neighbor_window),
            per_note_chars=_pick(max_evidence_chars_per_note, e.max_chars_per_note),
        ).clamped(plan.desired_notes)

        meta_cache = MetaCache(self.repo)
        results = compose_result_rows(self.repo, plan.rows, composition, meta_cache.get)
        logger.debug(
            "context_composed",
            desired_notes=plan.desired_notes,
            used_k=plan.used_k,
            results=len(results),
        )
        return ContextResult(
            desired_notes=plan.desired_notes,
            used_k=plan.used_k,
            composition=composition,
            results=results,
        )

    def get_graph_context(
        self,
        query_embedding: Sequence[float],
        seed_top_k: int | None = None,
        relations: Sequence[str] | None = None,
        max_hops: int | None = None,
        max_notes: int | None = None,
        max_edges: int | None = None,
        max_links_per_note: int | None = None,
        include_incoming: bool | None = None,
        max_resolutions_per_target: int | None = None,
        path_prefix: str | None = None,
        max_chunks_per_note: int | None = None,
    ) -> GraphContext:
        """Semantic seeds, their bounded typed-link subgraph, and per-node snippets.

        Context notes are ranked by ``best_snippet_distance + hop * hop_penalty``;
        a node without a snippet scores ``min_seed_distance + 1`` before the
        hop penalty.
        """
        g = self.config.graph
        seed_top_k = limits.clamp(_pick(seed_top_k, g.seed_top_k), 1, limits.MAX_DESIRED_NOTES)
        chunks_per_note = limits.clamp(
            _pick(max_chunks_per_note, g.max_chunks_per_note), 1, limits.MAX_CHUNKS_PER_NOTE
        )
        params = self._graph_params(
            relations,
            max_hops,
            max_notes,
            max_edges,
            max_links_per_note,
            include_incoming,
            max_resolutions_per_target,
            path_prefix,
        )
        scope = SearchFilters(path_prefix=params.path_prefix)

        used_seed_k = min(limits.MAX_SEED_CHUNKS, max(50, seed_top_k * 20))
        seed_hits = select_seeds(
            self.repo.semantic_search(query_embedding, used_seed_k, scope), seed_top_k
        )

        meta_cache = MetaCache(self.repo)
        graph = expand_graph(
            self.repo, [(h.path, h.distance) for h in seed_hits], params, meta_cache
        )

        used_context_k = 0
        snippets_by_path: dict[str, list[Snippet]] = {}
        if graph.nodes:
            used_context_k = min(
                limits.MAX_CONTEXT_CHUNKS, max(200, params.max_notes * chunks_per_note * 8)
            )
            candidates = {n.path for n in graph.nodes}
            for hit in self.repo.semantic_search(query_embedding, used_context_k, scope):
                if hit.path not in candidates:
                    continue
                bucket = snippets_by_path.setdefault(hit.path, [])
                if len(bucket) < chunks_per_note:
                    bucket.append(_snippet(hit))

        context_notes = []
        for node in graph.nodes:
            snippets = snippets_by_path.get(node.path, [])
            distance = snippets[0].distance if snippets else node.min_seed_distance + 1
            context_notes.append(
                ContextNote(
                    path=node.path,
                    hop=node.hop,
                    score=distance + node.hop * params.hop_penalty,
                    title=node.title,
                    summary=node.summary,
                    entity=node.entity,
                    layer=node.layer,
                    status=node.status,
                    updated=node.updated,
                    tags=list(node.tags),
                    keywords=list(node.keywords),
                    snippets=snippets,
                )
            )
        context_notes.sort(key=lambda n: (n.score, n.path))

        return GraphContext(
            params=params,
            used_seed_k=used_seed_k,
            used_context_k=used_context_k,
            seeds=[
                SeedNote(
                    path=h.path,
                    distance=h.distance,
                    heading=h.heading,
                    heading_path=list(h.heading_path),
                    snippet=h.content[:SNIPPET_CHARS],
                )
                for h in seed_hits
            ],
            graph=graph,
            context_notes=context_notes,
        )

    def _graph_params(
        self,
        relations: Sequence[str] | None,
        max_hops: int | None,
        max_notes: int | None,
        max_edges: int | None,
        max_links_per_note: int | None,
        include_incoming: bool | None,
        max_resolutions_per_target: int | None,
        path_prefix: str | None,
    ) -> GraphParams:
        g = self.config.graph
        return GraphParams(
            relations=tuple(relations) if relations else tuple(g.relations),
            max_hops=_pick(max_hops, g.max_hops),
            max_notes=_pick(max_notes, g.max_notes),
            max_edges=_pick(max_edges, g.max_edges),
            max_links_per_note=_pick(max_links_per_note, g.max_links_per_note),
            max_resolutions_per_target=_pick(
                max_resolutions_per_target, g.max_resolutions_per_target
            ),
            include_incoming=_pick(include_incoming, g.include_incoming),
            path_prefix=path_prefix,
            hop_penalty=g.hop_penalty,
        ).clamped()


def _pick(value, default):
    return default if value is None else value


def _snippet(hit: SemanticHit) -> Snippet:
    return Snippet(
        distance=hit.distance,
        heading=hit.heading,
        heading_path=list(hit.heading_path),
        snippet=hit.content[:SNIPPET_CHARS],
    )
