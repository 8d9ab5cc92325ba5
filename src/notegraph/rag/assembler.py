"""Evidence assembly: neighbour-window stitching under character budgets.

Pipeline per ranked note row:
  1. Window = best hit's chunk_index ± neighbor_window, plus every extra hit.
  2. Fetch those chunks in document order.
  3. Stitch them into one string within the per-row budget.
  4. Charge the stitched length to the global budget; once it is spent,
     later rows carry metadata and a snippet only.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from notegraph.db.models import NoteMeta
from notegraph.db.repository import Repository
from notegraph.rag import limits
from notegraph.rag.retriever import OrderedHitRow

SEPARATOR = "\n\n"
SNIPPET_CHARS = 300


class _Stitchable(Protocol):
    chunk_id: str
    content: str


@dataclass
class StitchResult:
    """Stitched evidence text.

    Attributes:
        text: Chunk contents joined by blank lines, never longer than the budget.
        truncated: True when any chunk was cut or left out.
        used_chunk_ids: Chunks included whole, in order.
        partial_chunk_id: The chunk whose prefix closes ``text``, if one was cut.
    """

    text: str = ""
    truncated: bool = False
    used_chunk_ids: list[str] = field(default_factory=list)
    partial_chunk_id: str | None = None


@dataclass
class EvidenceChunk:
    chunk_id: str
    chunk_index: int
    kind: str  # hit | neighbor
    distance: float | None
    heading: str | None
    heading_path: list[str] = field(default_factory=list)


@dataclass
class Evidence:
    text: str | None = None
    truncated: bool = False
    chunks: list[EvidenceChunk] = field(default_factory=list)

    @property
    def used_chars(self) -> int:
        return len(self.text or "")


@dataclass
class CompositionParams:
    """Evidence budgets for one query.

    Attributes:
        expand_top_k: Number of leading rows that receive evidence.
        neighbor_window: Chunks taken on each side of the best hit (0-3).
        per_note_chars: Per-row evidence budget (200-20 000).
    """

    expand_top_k: int = 5
    neighbor_window: int = 1
    per_note_chars: int = 1500

    def clamped(self, desired_notes: int) -> CompositionParams:
        return CompositionParams(
            expand_top_k=limits.clamp(self.expand_top_k, 0, max(0, desired_notes)),
            neighbor_window=limits.clamp(self.neighbor_window, 0, limits.MAX_NEIGHBOR_WINDOW),
            per_note_chars=limits.clamp(
                self.per_note_chars, limits.MIN_EVIDENCE_CHARS, limits.MAX_EVIDENCE_CHARS
            ),
        )

    @property
    def max_total_chars(self) -> int:
        return self.expand_top_k * self.per_note_chars


@dataclass
class ResultRow:
    path: str
    distance: float
    title: str | None
    summary: str | None
    tags: list[str]
    keywords: list[str]
    heading: str | None
    heading_path: list[str]
    snippet: str
    evidence_text: str | None = None
    evidence_truncated: bool = False
    evidence_chunks: list[EvidenceChunk] = field(default_factory=list)


def stitch(chunks: Sequence[_Stitchable], max_chars: float) -> StitchResult:
    """Concatenate chunk contents within *max_chars*.

    Contents are trimmed and empty ones skipped. Each chunk is taken whole
    while it fits; the first one that does not fit contributes as much of its
    prefix as the budget allows, and stitching stops there.

    Args:
        chunks: Objects with ``chunk_id`` and ``content``, in output order.
        max_chars: Character budget; floored, minimum 1.

    Returns:
        StitchResult. A cut chunk is reported in ``partial_chunk_id``, not in
        ``used_chunk_ids``.
    """
    budget = max(1, math.floor(max_chars))
    result = StitchResult()

    for chunk in chunks:
        part = (chunk.content or "").strip()
        if not part:
            continue

        separator = SEPARATOR if result.text else ""
        candidate = f"{result.text}{separator}{part}"
        if len(candidate) <= budget:
            result.text = candidate
            result.used_chunk_ids.append(chunk.chunk_id)
            continue

        remaining = budget - len(result.text) - len(separator)
        if remaining > 0:
            result.text = f"{result.text}{separator}{part[:remaining]}"
            result.partial_chunk_id = chunk.chunk_id
        result.truncated = True
        break

    return result


def evidence_window(row: OrderedHitRow, neighbor_window: int) -> list[int]:
    """Ascending chunk indices to fetch for *row* (negatives dropped)."""
    wanted = {
        row.best.chunk_index + offset for offset in range(-neighbor_window, neighbor_window + 1)
    }
    wanted.update(hit.chunk_index for hit in row.hits[1:])
    return sorted(i for i in wanted if i >= 0)


def compose_evidence_for_row(
    repo: Repository,
    row: OrderedHitRow,
    neighbor_window: int,
    max_chars: int,
) -> Evidence:
    """Fetch the chunk window around *row*'s hits and stitch it under *max_chars*."""
    chunks = repo.list_chunks_by_path_and_indices(row.path, evidence_window(row, neighbor_window))
    stitched = stitch(chunks, max_chars)

    distance_by_id = {hit.chunk_id: hit.distance for hit in row.hits}
    included = set(stitched.used_chunk_ids)
    if stitched.partial_chunk_id:
        included.add(stitched.partial_chunk_id)

    return Evidence(
        text=stitched.text,
        truncated=stitched.truncated,
        chunks=[
            EvidenceChunk(
                chunk_id=c.chunk_id,
                chunk_index=c.chunk_index,
                kind="hit" if c.chunk_id in distance_by_id else "neighbor",
                distance=distance_by_id.get(c.chunk_id),
                heading=c.heading,
                heading_path=list(c.heading_path),
            )
            for c in chunks
            if c.chunk_id in included
        ],
    )


def compose_result_rows(
    repo: Repository,
    ordered: Sequence[OrderedHitRow],
    params: CompositionParams,
    meta_lookup: Callable[[str], NoteMeta | None] | None = None,
) -> list[ResultRow]:
    """Turn ranked rows into results, spending the evidence budget in rank order.

    Args:
        repo: Repository for chunk windows and note metadata.
        ordered: Rows from plan_retrieval, best first.
        params: Already-clamped composition budgets.
        meta_lookup: Callable ``path -> NoteMeta | None``; defaults to
            ``repo.get_note_meta``. Pass a MetaCache's ``get`` to share lookups.

    Returns:
        One ResultRow per input row, same order.
    """
    lookup = meta_lookup or repo.get_note_meta
    max_total = params.max_total_chars
    used_total = 0
    results: list[ResultRow] = []

    for rank, row in enumerate(ordered):
        evidence = Evidence()
        if rank < params.expand_top_k and used_total < max_total:
            remaining = max_total - used_total
            max_chars = max(limits.MIN_EVIDENCE_CHARS, min(params.per_note_chars, remaining))
            evidence = compose_evidence_for_row(repo, row, params.neighbor_window, max_chars)
            used_total += evidence.used_chars

        results.append(_build_result_row(row, lookup(row.path), evidence))

    return results


def _build_result_row(row: OrderedHitRow, meta: NoteMeta | None, evidence: Evidence) -> ResultRow:
    snippet_source = evidence.text if evidence.text is not None else row.best.content
    return ResultRow(
        path=row.path,
        distance=row.best.distance,
        title=meta.title if meta else None,
        summary=meta.summary if meta else None,
        tags=list(meta.tags) if meta else [],
        keywords=list(meta.keywords) if meta else [],
        heading=row.best.heading,
        heading_path=list(row.best.heading_path),
        snippet=snippet_source[:SNIPPET_CHARS],
        evidence_text=evidence.text,
        evidence_truncated=evidence.truncated,
        evidence_chunks=evidence.chunks,
    )
