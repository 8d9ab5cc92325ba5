"""Tests for typed-link target resolution and the inverse reference helper."""

from __future__ import annotations

import pytest

from notegraph.rag.resolver import guess_reference_targets_for_note, resolve_targets, split_target


# ------------------------------------------------------------------
# split_target
# ------------------------------------------------------------------


@pytest.mark.parametrize("target,expected", [
    ("Note", ("Note", "Note.md")),
    ("dir/Note.md", ("dir/Note", "dir/Note.md")),
    ("Note.MD", ("Note", "Note.MD")),
])
def test_split_target(target, expected):
    assert split_target(target) == expected


# ------------------------------------------------------------------
# resolve_targets
# ------------------------------------------------------------------


def test_resolve_strategy_priority(repo, add_note):
    add_note("X/Y.md", title="Y")
    add_note("other.md", title="Y")
    add_note("ids.md", title="Something", note_id="Y")

    resolved = resolve_targets(repo, "Y")

    assert [(r.path, r.matched_by) for r in resolved] == [
        ("X/Y.md", "path"),
        ("ids.md", "note_id"),
        ("other.md", "title"),
    ]


def test_resolve_path_match_beats_title_match(repo, add_note):
    add_note("X/Y.md", title="Y")
    add_note("decoy.md", title="X/Y")
    resolved = resolve_targets(repo, "Y.md")
    assert resolved[0].path == "X/Y.md"
    assert resolved[0].matched_by == "path"


def test_resolve_title_strategy_strips_suffix(repo, add_note):
    add_note("decoy.md", title="X/Y")
    resolved = resolve_targets(repo, "X/Y.md")
    assert [(r.path, r.matched_by) for r in resolved] == [("decoy.md", "title")]


def test_resolve_dedupes_across_strategies(repo, add_note):
    add_note("Topic.md", title="Topic", note_id="Topic")
    resolved = resolve_targets(repo, "Topic")
    assert [(r.path, r.matched_by) for r in resolved] == [("Topic.md", "path")]
    assert resolved[0].title == "Topic"


def test_resolve_suffix_requires_segment_boundary(repo, add_note):
    add_note("archive/Y.md")
    add_note("XY.md")
    assert [r.path for r in resolve_targets(repo, "Y")] == ["archive/Y.md"]


def test_resolve_path_wildcards_literal(repo, add_note):
    add_note("a/100%.md")
    add_note("a/100x.md")
    assert [r.path for r in resolve_targets(repo, "100%")] == ["a/100%.md"]


def test_resolve_respects_limit(repo, add_note):
    for i in range(5):
        add_note(f"n{i}.md", title="Same")
    assert len(resolve_targets(repo, "Same", limit=3)) == 3
    assert len(resolve_targets(repo, "Same", limit=0)) == 1


@pytest.mark.parametrize("target", ["", "   ", None])
def test_resolve_blank_target(repo, add_note, target):
    add_note("a.md", title="")
    assert resolve_targets(repo, target) == []


def test_resolve_unknown_target(repo, add_note):
    add_note("a.md", title="A")
    assert resolve_targets(repo, "nothing") == []


def test_resolve_trims_target(repo, add_note):
    add_note("a.md", title="A")
    assert [r.path for r in resolve_targets(repo, "  a  ")] == ["a.md"]


# ------------------------------------------------------------------
# guess_reference_targets_for_note
# ------------------------------------------------------------------


def test_guess_reference_targets_order():
    targets = guess_reference_targets_for_note(
        "projects/Alpha.md",
        title="Alpha Project",
        note_id="P-1",
        frontmatter={"aliases": ["alpha", "  ", "Alpha"]},
    )
    assert targets == [
        "Alpha",
        "Alpha Project",
        "P-1",
        "alpha",
        "projects/Alpha",
        "projects/Alpha.md",
    ]


def test_guess_reference_targets_string_alias():
    targets = guess_reference_targets_for_note("a.md", frontmatter={"aliases": "Ay"})
    assert targets == ["a", "Ay", "a.md"]


def test_guess_reference_targets_ignores_non_strings():
    targets = guess_reference_targets_for_note("a.md", title=None, frontmatter={"aliases": [1, None]})
    assert targets == ["a", "a.md"]
