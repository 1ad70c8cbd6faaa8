"""Application configuration defaults."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

MEMORY_DIR_ENV = "ADAPTIVE_MEMORY_DIR"
PROJECT_DIR_ENV = "ADAPTIVE_MEMORY_PROJECT_DIR"
STATE_DIR_ENV = "ADAPTIVE_MEMORY_STATE_DIR"

FALLBACK_CONTINUE = "continue_without_context"
FALLBACK_LOAD_ALL = "load_all_memory"
FALLBACK_BEHAVIORS = (FALLBACK_CONTINUE, FALLBACK_LOAD_ALL)


def expand_path(value: str | Path) -> Path:
    """Expand a leading ``~`` to the user's home directory."""
    return Path(os.path.expanduser(str(value)))


def _default_state_dir() -> Path:
    return Path.home() / ".adaptive-memory"


def resolve_memory_dir(explicit: str | Path | None = None) -> Path:
    """Resolve the corpus root.

    Order: ``ADAPTIVE_MEMORY_DIR`` > explicit value >
    ``ADAPTIVE_MEMORY_PROJECT_DIR``/memory > ``~/.adaptive-memory/memory``.
    """
    override = os.environ.get(MEMORY_DIR_ENV)
    if override:
        return expand_path(override)
    if explicit:
        return expand_path(explicit)
    project = os.environ.get(PROJECT_DIR_ENV)
    if project:
        return expand_path(project) / "memory"
    return _default_state_dir() / "memory"


def resolve_state_dir(explicit: str | Path | None = None) -> Path:
    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return expand_path(override)
    if explicit:
        return expand_path(explicit)
    return _default_state_dir()


@dataclass(slots=True)
class AppConfig:
    enabled: bool = True
    search_top_k: int = 3
    max_results_per_search: int = 12
    min_relevance_score: float = 0.55
    fallback_behavior: str = FALLBACK_CONTINUE
    enable_logging: bool = True
    log_level: str = "info"

    memory_dir: Path | None = None
    core_memory_path: Path | None = None
    state_dir: Path | None = None
    sessions_dir: Path | None = None

    # Injection budgets
    max_injected_chars_total: int = 4000
    max_snippet_chars_each: int = 800

    # Chunking and cache bounds
    max_chunk_chars: int = 1200
    max_chunks_per_file: int = 200
    max_cache_files: int = 500
    max_cache_bytes: int = 10 * 1024 * 1024

    # Relevance coverage gate
    coverage_gate_min_keywords: int = 4
    coverage_gate_min_hits: int = 2

    # Maintenance thresholds
    daily_bloat_bytes: int = 8000
    core_bloat_bytes: int = 12000
    snooze_hours: int = 24

    digest_max_sessions: int = 8
    digest_max_chars: int = 8000

    def __post_init__(self) -> None:
        self.memory_dir = resolve_memory_dir(self.memory_dir)
        self.state_dir = resolve_state_dir(self.state_dir)
        if self.sessions_dir is None:
            self.sessions_dir = self.state_dir / "sessions"
        else:
            self.sessions_dir = expand_path(self.sessions_dir)
        if self.core_memory_path is not None:
            self.core_memory_path = expand_path(self.core_memory_path)
        if self.fallback_behavior not in FALLBACK_BEHAVIORS:
            LOGGER.warning(
                "Unknown fallback behavior %r; using %s", self.fallback_behavior, FALLBACK_CONTINUE
            )
            self.fallback_behavior = FALLBACK_CONTINUE

    @property
    def cache_path(self) -> Path:
        return self.state_dir / "chunk-cache.json"

    @property
    def maintenance_state_path(self) -> Path:
        return self.state_dir / "maintenance-state.json"

    @property
    def digest_state_path(self) -> Path:
        return self.state_dir / "digest-state.json"

    @property
    def session_markers_dir(self) -> Path:
        return self.state_dir / "sessions-processed"

    @property
    def archive_dir(self) -> Path:
        return self.memory_dir / "archive"

    @property
    def digest_path(self) -> Path:
        return self.memory_dir / "session-digest.md"

    def workspace_root(self) -> Path:
        if self.memory_dir.name == "memory":
            return self.memory_dir.parent
        project = os.environ.get(PROJECT_DIR_ENV)
        if project:
            return expand_path(project)
        return self.memory_dir.parent

    def resolve_core_memory_path(self) -> Path:
        """Locate the long-lived core document (``MEMORY.md``)."""
        if self.core_memory_path is not None:
            return self.core_memory_path
        candidates = [
            self.workspace_root() / "MEMORY.md",
            self.memory_dir / "MEMORY.md",
            self.memory_dir.parent / "MEMORY.md",
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return candidates[0]


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


# Legacy key names that do not map by case conversion alone.
_KEY_ALIASES = {"enable_adaptive_memory": "enabled"}


def config_from_mapping(values: dict[str, Any]) -> AppConfig:
    """Build a config from a flat mapping, accepting camelCase keys."""
    known = {f.name for f in fields(AppConfig)}
    kwargs: dict[str, Any] = {}
    for raw_key, value in values.items():
        key = _snake_case(raw_key)
        key = _KEY_ALIASES.get(key, key)
        if key not in known:
            LOGGER.debug("Ignoring unknown config key %s", raw_key)
            continue
        kwargs[key] = value
    return AppConfig(**kwargs)


def load_config(path: Path | None) -> AppConfig:
    """Load a flat JSON config file merged over defaults.

    A missing path yields defaults; an invalid file logs a warning and
    yields defaults as well.
    """
    if path is None or not Path(path).exists():
        return AppConfig()
    try:
        parsed = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(parsed, dict):
            raise ValueError("config root must be an object")
        return config_from_mapping(parsed)
    except (OSError, ValueError, TypeError) as exc:
        LOGGER.warning("Config %s invalid; using defaults: %s", path, exc)
        return AppConfig()
