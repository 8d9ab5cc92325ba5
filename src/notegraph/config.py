"""notegraph configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (NOTEGRAPH_DB_PATH, NOTEGRAPH_EMBEDDING_MODEL,
                             NOTEGRAPH_EMBEDDING_DIM, NOTEGRAPH_LOG_LEVEL)
  3. Per-project notegraph.yaml  (in the working directory)
  4. Global ~/.notegraph/config.yaml
  5. Hardcoded defaults

Bounds read here are the defaults callers start from; the engine still clamps
every value to its hard ceiling at call time.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from notegraph.rag.graph import DEFAULT_RELATIONS, HOP_PENALTY

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".notegraph"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "notegraph.yaml"

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["storage", "retrieval", "graph", "evidence", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["debug", "info", "warning", "error", "critical"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or environment variable holds an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StorageCfg:
    """Index database location and embedding space (notegraph.yaml: storage:).

    Attributes:
        db_path: SQLite index file, used when no --db is given.
        embedding_model: Model the index must have been built with. None accepts
            whatever the index records.
        embedding_dim: Vector dimension the index must use. None accepts the
            recorded one.
    """

    db_path: str = ".notegraph.db"
    embedding_model: str | None = None
    embedding_dim: int | None = None


@dataclass
class RetrievalCfg:
    """Semantic search configuration (notegraph.yaml: retrieval:)."""

    top_k: int = 10
    hit_chunks_per_note: int = 2
    overfetch_min_k: int = 50
    overfetch_per_note: int = 15
    overfetch_max_k: int = 500
    overfetch_max_attempts: int = 3
    overfetch_growth: int = 2


@dataclass
class GraphCfg:
    """Typed-link expansion defaults (notegraph.yaml: graph:)."""

    hop_penalty: float = HOP_PENALTY
    relations: list[str] = field(default_factory=lambda: list(DEFAULT_RELATIONS))
    seed_top_k: int = 10
    max_hops: int = 1
    max_notes: int = 80
    max_edges: int = 2000
    max_links_per_note: int = 40
    max_resolutions_per_target: int = 5
    include_incoming: bool = False
    max_chunks_per_note: int = 2


@dataclass
class EvidenceCfg:
    """Evidence stitching budgets (notegraph.yaml: evidence:)."""

    expand_top_k: int = 5
    neighbor_window: int = 1
    max_chars_per_note: int = 1500


@dataclass
class LoggingCfg:
    level: str = "warning"
    json: bool = False


@dataclass
class NotegraphConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    storage: StorageCfg = field(default_factory=StorageCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    graph: GraphCfg = field(default_factory=GraphCfg)
    evidence: EvidenceCfg = field(default_factory=EvidenceCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _int(section: str, raw: dict[str, Any], key: str, default: int, minimum: int = 0) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from exc
    if parsed < minimum:
        raise ConfigError(f"{section}.{key} must be >= {minimum}, got {parsed}")
    return parsed


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(raw).__name__}")
    return raw


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> NotegraphConfig:
    """Build a *NotegraphConfig* from a merged raw YAML dict."""
    cfg = NotegraphConfig()

    if "storage" in data:
        s = _section(data, "storage")
        cfg.storage = StorageCfg(
            db_path=str(s.get("db_path", cfg.storage.db_path)),
            embedding_model=(
                str(s["embedding_model"])
                if s.get("embedding_model") is not None
                else cfg.storage.embedding_model
            ),
            embedding_dim=(
                _int("storage", s, "embedding_dim", 0, 1)
                if s.get("embedding_dim") is not None
                else cfg.storage.embedding_dim
            ),
        )

    if "retrieval" in data:
        r = _section(data, "retrieval")
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            top_k=_int("retrieval", r, "top_k", d.top_k, 1),
            hit_chunks_per_note=_int("retrieval", r, "hit_chunks_per_note", d.hit_chunks_per_note, 1),
            overfetch_min_k=_int("retrieval", r, "overfetch_min_k", d.overfetch_min_k, 1),
            overfetch_per_note=_int("retrieval", r, "overfetch_per_note", d.overfetch_per_note, 1),
            overfetch_max_k=_int("retrieval", r, "overfetch_max_k", d.overfetch_max_k, 1),
            overfetch_max_attempts=_int(
                "retrieval", r, "overfetch_max_attempts", d.overfetch_max_attempts, 0
            ),
            overfetch_growth=_int("retrieval", r, "overfetch_growth", d.overfetch_growth, 2),
        )

    if "graph" in data:
        g = _section(data, "graph")
        d = cfg.graph
        relations = g.get("relations", d.relations)
        if isinstance(relations, str) or not isinstance(relations, list):
            raise ConfigError(f"graph.relations must be a list of strings, got {relations!r}")
        try:
            hop_penalty = float(g.get("hop_penalty", d.hop_penalty))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"graph.hop_penalty must be a number, got {g.get('hop_penalty')!r}") from exc
        if hop_penalty < 0:
            raise ConfigError(f"graph.hop_penalty must be >= 0, got {hop_penalty}")
        cfg.graph = GraphCfg(
            hop_penalty=hop_penalty,
            relations=[str(r) for r in relations],
            seed_top_k=_int("graph", g, "seed_top_k", d.seed_top_k, 1),
            max_hops=_int("graph", g, "max_hops", d.max_hops, 0),
            max_notes=_int("graph", g, "max_notes", d.max_notes, 1),
            max_edges=_int("graph", g, "max_edges", d.max_edges, 1),
            max_links_per_note=_int("graph", g, "max_links_per_note", d.max_links_per_note, 1),
            max_resolutions_per_target=_int(
                "graph", g, "max_resolutions_per_target", d.max_resolutions_per_target, 1
            ),
            include_incoming=bool(g.get("include_incoming", d.include_incoming)),
            max_chunks_per_note=_int("graph", g, "max_chunks_per_note", d.max_chunks_per_note, 1),
        )

    if "evidence" in data:
        e = _section(data, "evidence")
        d = cfg.evidence
        cfg.evidence = EvidenceCfg(
            expand_top_k=_int("evidence", e, "expand_top_k", d.expand_top_k, 0),
            neighbor_window=_int("evidence", e, "neighbor_window", d.neighbor_window, 0),
            max_chars_per_note=_int("evidence", e, "max_chars_per_note", d.max_chars_per_note, 1),
        )

    if "logging" in data:
        lg = _section(data, "logging")
        cfg.logging = LoggingCfg(
            level=_log_level(str(lg.get("level", cfg.logging.level))),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _log_level(value: str) -> str:
    level = value.strip().lower()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"Unknown log level '{value}'. Use one of: {', '.join(sorted(_LOG_LEVELS))}"
        )
    return level


def _apply_env_overrides(cfg: NotegraphConfig) -> NotegraphConfig:
    """Apply NOTEGRAPH_* environment variable overrides."""
    if db_path := os.environ.get("NOTEGRAPH_DB_PATH"):
        cfg.storage.db_path = db_path
    if model := os.environ.get("NOTEGRAPH_EMBEDDING_MODEL"):
        cfg.storage.embedding_model = model
    if dim := os.environ.get("NOTEGRAPH_EMBEDDING_DIM"):
        cfg.storage.embedding_dim = _int(
            "NOTEGRAPH_EMBEDDING_DIM", {"value": dim}, "value", 0, 1
        )
    if level := os.environ.get("NOTEGRAPH_LOG_LEVEL"):
        cfg.logging.level = _log_level(level)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> NotegraphConfig:
    """Load and return a merged *NotegraphConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *notegraph.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *NotegraphConfig* with env var overrides applied.

    Raises:
        ConfigError: If a value has the wrong type or is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"'{path}' must contain a mapping at the top level")
    return raw
