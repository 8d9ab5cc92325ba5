"""Typed-link target resolution.

A typed link stores its target as authored (``[[Some Note]]`` → ``Some Note``).
Resolution maps that text to concrete note paths; the inverse helper lists the
strings other notes could use to reference a given note.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any

from notegraph.db.models import ResolvedTarget
from notegraph.db.repository import Repository
from notegraph.rag.limits import MAX_RESOLVE_LIMIT, clamp

NOTE_SUFFIX = ".md"


def split_target(target: str) -> tuple[str, str]:
    """Return ``(target_without_suffix, target_with_suffix)`` for a trimmed target.

    The ``.md`` suffix is matched case-insensitively and kept as written.
    """
    if target.lower().endswith(NOTE_SUFFIX):
        return target[: -len(NOTE_SUFFIX)], target
    return target, f"{target}{NOTE_SUFFIX}"


def resolve_targets(repo: Repository, target: str, limit: int = 20) -> list[ResolvedTarget]:
    """Resolve a wikilink-style *target* to candidate notes.

    Strategies run in priority order and are merged by path (first wins):

      1. path equals the target, or ends with ``/<target>`` (suffix added if missing)
      2. note_id equals the target without suffix
      3. title equals the target without suffix

    Args:
        repo: Repository to query.
        target: Free-text reference as authored. Blank → no results.
        limit: Maximum results, clamped to [1, 200].

    Returns:
        Resolved targets; ``matched_by`` names the strategy that found each path.
    """
    trimmed = (target or "").strip()
    if not trimmed:
        return []

    effective_limit = clamp(limit, 1, MAX_RESOLVE_LIMIT)
    no_ext, with_ext = split_target(trimmed)

    strategies = (
        ("path", lambda: repo.notes_by_path(with_ext, effective_limit)),
        ("note_id", lambda: repo.notes_by_note_id(no_ext, effective_limit)),
        ("title", lambda: repo.notes_by_title(no_ext, effective_limit)),
    )

    out: list[ResolvedTarget] = []
    seen: set[str] = set()
    for matched_by, lookup in strategies:
        for path, title in lookup():
            if path in seen:
                continue
            seen.add(path)
            out.append(ResolvedTarget(path=path, title=title, matched_by=matched_by))
            if len(out) >= effective_limit:
                return out
    return out


def guess_reference_targets_for_note(
    path: str,
    title: str | None = None,
    note_id: str | None = None,
    frontmatter: Mapping[str, Any] | None = None,
) -> list[str]:
    """Strings other notes may use to link to this note, first-seen order.

    Filename stem, title, note id, frontmatter aliases (string or list), then
    the path without suffix and the full path. Values are trimmed; blanks and
    repeats are dropped.
    """
    targets: list[str] = []
    seen: set[str] = set()

    def add(value: object) -> None:
        if not isinstance(value, str):
            return
        value = value.strip()
        if not value or value in seen:
            return
        seen.add(value)
        targets.append(value)

    name = PurePosixPath(path).name
    add(split_target(name)[0] if name else name)
    add(title)
    add(note_id)

    aliases = (frontmatter or {}).get("aliases")
    if isinstance(aliases, str):
        add(aliases)
    elif isinstance(aliases, (list, tuple)):
        for alias in aliases:
            add(alias)

    add(split_target(path)[0])
    add(path)
    return targets
