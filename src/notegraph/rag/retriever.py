"""Semantic retrieval over chunk embeddings, deduplicated to notes.

KNN returns chunks, but callers usually want N distinct notes. One note with
many near-identical chunks can fill the whole result, so the chunk limit is
escalated until enough distinct paths come back:

  k = min(max_k, max(min_k, desired_notes * per_note))
  while distinct_paths < desired_notes and k < max_k: k *= growth  (max_attempts times)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from notegraph.db.models import SearchFilters, SemanticHit
from notegraph.db.repository import Repository
from notegraph.rag.limits import MAX_DESIRED_NOTES, MAX_HIT_CHUNKS_PER_NOTE, clamp

logger = structlog.get_logger(__name__)


@dataclass
class OverfetchPolicy:
    """How far to escalate the chunk limit when hunting for distinct notes.

    Attributes:
        min_k: Smallest chunk limit ever requested.
        per_note: Chunks requested per desired note on the first attempt.
        max_k: Chunk limit ceiling; escalation stops here.
        max_attempts: Additional attempts after the first query.
        growth: Multiplier applied to k on each attempt.
    """

    min_k: int = 50
    per_note: int = 15
    max_k: int = 500
    max_attempts: int = 3
    growth: int = 2

    def initial_k(self, desired_notes: int) -> int:
        return min(self.max_k, max(self.min_k, desired_notes * self.per_note))


@dataclass
class OrderedHitRow:
    """One note in a ranked result: its best chunk plus further same-note hits."""

    path: str
    best: SemanticHit
    hits: list[SemanticHit] = field(default_factory=list)

    @property
    def best_distance(self) -> float:
        return self.best.distance


@dataclass
class OverfetchResult:
    hits: list[SemanticHit]
    used_k: int


@dataclass
class RetrievalPlan:
    desired_notes: int
    hit_chunks_per_note: int
    used_k: int
    rows: list[OrderedHitRow]


def count_unique_paths(hits: Sequence[SemanticHit]) -> int:
    return len({h.path for h in hits})


def overfetch_chunk_hits(
    repo: Repository,
    query_embedding: Sequence[float],
    desired_notes: int,
    filters: SearchFilters | None = None,
    policy: OverfetchPolicy | None = None,
) -> OverfetchResult:
    """Query KNN, escalating k until *desired_notes* distinct paths are covered.

    Returns the hits of the last query (nearest first) and the k it used.
    Never asks the index for more than ``policy.max_k`` chunks.
    """
    policy = policy or OverfetchPolicy()
    desired = max(1, int(desired_notes))
    k = policy.initial_k(desired)
    hits = repo.semantic_search(query_embedding, k, filters)

    attempts = 0
    while (
        count_unique_paths(hits) < desired
        and k < policy.max_k
        and attempts < policy.max_attempts
    ):
        attempts += 1
        k = min(policy.max_k, k * policy.growth)
        logger.debug(
            "overfetch_escalated",
            k=k,
            attempt=attempts,
            unique_paths=count_unique_paths(hits),
            desired=desired,
        )
        hits = repo.semantic_search(query_embedding, k, filters)

    return OverfetchResult(hits=hits, used_k=k)


def build_ordered_rows(
    hits: Sequence[SemanticHit],
    desired_notes: int,
    hit_chunks_per_note: int,
) -> list[OrderedHitRow]:
    """Group distance-ordered hits by path and rank notes by their best hit.

    Each row keeps at most *hit_chunks_per_note* hits in input order; rows are
    ordered by (best distance, path) and cut to *desired_notes*.
    """
    per_note = max(1, int(hit_chunks_per_note))
    by_path: dict[str, list[SemanticHit]] = {}
    for hit in hits:
        bucket = by_path.setdefault(hit.path, [])
        if len(bucket) < per_note:
            bucket.append(hit)

    rows = [OrderedHitRow(path=path, best=bucket[0], hits=bucket) for path, bucket in by_path.items()]
    rows.sort(key=lambda r: (r.best.distance, r.path))
    return rows[: max(1, int(desired_notes))]


def plan_retrieval(
    repo: Repository,
    query_embedding: Sequence[float],
    desired_notes: int,
    hit_chunks_per_note: int = 1,
    filters: SearchFilters | None = None,
    policy: OverfetchPolicy | None = None,
) -> RetrievalPlan:
    """Over-fetch chunk hits and fold them into ranked per-note rows.

    Desired notes are clamped to [1, 50], hits per note to [1, 5].
    """
    desired = clamp(desired_notes, 1, MAX_DESIRED_NOTES)
    per_note = clamp(hit_chunks_per_note, 1, MAX_HIT_CHUNKS_PER_NOTE)
    fetched = overfetch_chunk_hits(repo, query_embedding, desired, filters, policy)
    return RetrievalPlan(
        desired_notes=desired,
        hit_chunks_per_note=per_note,
        used_k=fetched.used_k,
        rows=build_ordered_rows(fetched.hits, desired, per_note),
    )


def select_seeds(hits: Sequence[SemanticHit], seed_top_k: int) -> list[SemanticHit]:
    """Best (lowest-distance) hit per path, ordered by (distance, path)."""
    best: dict[str, SemanticHit] = {}
    for hit in hits:
        current = best.get(hit.path)
        if current is None or hit.distance < current.distance:
            best[hit.path] = hit
    ranked = sorted(best.values(), key=lambda h: (h.distance, h.path))
    return ranked[: max(1, int(seed_top_k))]
