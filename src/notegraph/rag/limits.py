"""Hard ceilings for caller-supplied bounds.

Values outside a range are clamped, never rejected.
"""

from __future__ import annotations

MAX_TOP_K = 2000
MAX_DESIRED_NOTES = 50
MAX_HOPS = 3
MAX_NOTES = 200
MAX_EDGES = 10_000
MAX_LINKS_PER_NOTE = 200
MAX_RESOLUTIONS_PER_TARGET = 20
MAX_RESOLVE_LIMIT = 200
MAX_NEIGHBOR_WINDOW = 3
MAX_HIT_CHUNKS_PER_NOTE = 5
MAX_CHUNKS_PER_NOTE = 5
MAX_SEED_CHUNKS = 500
MAX_CONTEXT_CHUNKS = 2000
MIN_EVIDENCE_CHARS = 200
MAX_EVIDENCE_CHARS = 20_000


def clamp(value: int | float, low: int, high: int) -> int:
    """Truncate *value* to an int and clamp it into [low, high]."""
    return max(low, min(high, int(value)))
