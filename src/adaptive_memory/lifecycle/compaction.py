"""Compaction of the dated output document and the core memory document."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from adaptive_memory.inject.sections import (
    DIGEST_END_MARKER,
    DIGEST_START_MARKER,
    MAINTENANCE_END_MARKER,
    MAINTENANCE_MARKER,
    append_section,
    strip_digest_sections,
    strip_injection_sections,
    strip_maintenance_notice,
)
from adaptive_memory.utils.files import atomic_write_text, daily_path, read_text_if_exists

LOGGER = logging.getLogger(__name__)

MAX_RECENT_INTENTS = 4
MAX_INTENT_CHARS = 140
MAX_TOP_SOURCES = 6
MAX_SUMMARY_LINES = 120
MAX_FALLBACK_SUMMARY_CHARS = 1800

_QUERY_LINE_RE = re.compile(r"^\s*Query:\s*(.+)$", re.MULTILINE)
_SOURCE_LINE_RE = re.compile(r"^###\s+\d+\.\s+(.+?)\s+\(relevance:", re.MULTILINE)
_STRUCTURAL_LINE_RE = re.compile(r"^(#{1,6}\s+|[-*]\s+|\d+\.\s+)")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_compacted_digest(sections: Sequence[str], *, now: datetime) -> str | None:
    """Summarize removed injection sections by their queries and sources."""
    if not sections:
        return None

    intents: List[str] = []
    sources: Counter = Counter()
    for section in sections:
        query = _QUERY_LINE_RE.search(section)
        if query:
            intents.append(query.group(1).strip())
        for match in _SOURCE_LINE_RE.finditer(section):
            sources[match.group(1).strip()] += 1

    recent = [f"- {intent[:MAX_INTENT_CHARS]}" for intent in intents[-MAX_RECENT_INTENTS:]]
    top = [
        f"- {source} ({_plural(count, 'hit')})"
        for source, count in sources.most_common(MAX_TOP_SOURCES)
    ]
    none = ["- (none captured)"]
    lines = [
        DIGEST_START_MARKER,
        "## Adaptive Memory Startup Digest (auto-compact)",
        f"*Updated: {now.isoformat()}*",
        "",
        f"Compacted {_plural(len(sections), 'prior adaptive-memory injection block')} "
        "from today's file.",
        "",
        "### Recent intents",
        *(recent or none),
        "",
        "### Frequent memory sources",
        *(top or none),
        DIGEST_END_MARKER,
    ]
    return "\n".join(lines)


@dataclass(slots=True)
class CompactionResult:
    changed: bool
    removed_sections: int = 0
    path: Path | None = None


def compact_daily_document(path: Path, *, now: datetime | None = None) -> CompactionResult:
    """Replace prior injection and digest sections with one compacted digest.

    A maintenance notice is left in place; it is owned by the consent flow.
    """
    now = now or datetime.now(timezone.utc)
    existing = read_text_if_exists(path)
    if not existing:
        return CompactionResult(changed=False)

    stripped, sections = strip_injection_sections(strip_digest_sections(existing))
    if not sections:
        return CompactionResult(changed=False)

    digest = build_compacted_digest(sections, now=now)
    atomic_write_text(path, "\n\n".join(part for part in (stripped, digest) if part).strip())
    LOGGER.info("Compacted %d injection sections in %s", len(sections), path)
    return CompactionResult(changed=True, removed_sections=len(sections), path=Path(path))


@dataclass(slots=True)
class DocumentSignal:
    path: Path
    size: int = 0
    exists: bool = False
    bloated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "size": self.size,
            "exists": self.exists,
            "bloated": self.bloated,
        }


@dataclass(slots=True)
class MaintenanceSignals:
    daily: DocumentSignal
    core: DocumentSignal
    daily_limit: int
    core_limit: int

    @property
    def any_bloated(self) -> bool:
        return self.daily.bloated or self.core.bloated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily": self.daily.to_dict(),
            "core": self.core.to_dict(),
            "limits": {"daily_bytes": self.daily_limit, "core_bytes": self.core_limit},
            "any_bloated": self.any_bloated,
        }


def _signal(path: Path, limit: int) -> DocumentSignal:
    signal = DocumentSignal(path=Path(path))
    try:
        size = Path(path).stat().st_size
    except OSError:
        return signal
    signal.exists = True
    signal.size = size
    signal.bloated = size > limit
    return signal


def render_maintenance_notice(signals: MaintenanceSignals) -> str:
    return "\n".join(
        [
            MAINTENANCE_MARKER,
            "## Memory Maintenance Notice (auto-detected)",
            "",
            "Your memory files are getting larger than the configured comfort threshold.",
            "",
            "- I can optimize them in a **lossless** way "
            "(archive full snapshots first, then compact active files).",
            "- I will not run this without explicit permission.",
            "",
            "If you want this, reply with:",
            "`yes, optimize memory files`",
            "",
            f"Observed sizes: daily={signals.daily.size} bytes, "
            f"MEMORY.md={signals.core.size} bytes",
            "---",
            MAINTENANCE_END_MARKER,
        ]
    )


def build_compact_summary(raw: str) -> List[str]:
    """Keep heading, bullet and numbered lines; fall back to flattened text."""
    selected: List[str] = []
    for line in raw.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if _STRUCTURAL_LINE_RE.match(stripped):
            selected.append(line)
        if len(selected) >= MAX_SUMMARY_LINES:
            break
    if selected:
        return selected
    flattened = " ".join(raw.split())[:MAX_FALLBACK_SUMMARY_CHARS]
    return [flattened] if flattened else ["(no summary content extracted)"]


def archive_stamp(now: datetime) -> str:
    return now.isoformat().replace(":", "-").replace(".", "-")


@dataclass(slots=True)
class OptimizationAction:
    kind: str
    path: Path
    archive_path: Path

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "path": str(self.path), "archive_path": str(self.archive_path)}


@dataclass(slots=True)
class OptimizationResult:
    changed: bool
    reason: str = ""
    actions: List[OptimizationAction] = field(default_factory=list)


class MemoryCompactor:
    """Owns the dated document, the core document and the archive directory."""

    def __init__(
        self,
        memory_dir: Path,
        core_path: Path,
        archive_dir: Path,
        *,
        daily_limit: int = 8000,
        core_limit: int = 12000,
    ) -> None:
        self.memory_dir = Path(memory_dir)
        self.core_path = Path(core_path)
        self.archive_dir = Path(archive_dir)
        self.daily_limit = daily_limit
        self.core_limit = core_limit

    def daily_path(self, now: datetime) -> Path:
        return daily_path(self.memory_dir, now.date())

    def compact_daily(self, *, now: datetime | None = None) -> CompactionResult:
        now = now or datetime.now(timezone.utc)
        return compact_daily_document(self.daily_path(now), now=now)

    def signals(self, *, now: datetime | None = None) -> MaintenanceSignals:
        now = now or datetime.now(timezone.utc)
        return MaintenanceSignals(
            daily=_signal(self.daily_path(now), self.daily_limit),
            core=_signal(self.core_path, self.core_limit),
            daily_limit=self.daily_limit,
            core_limit=self.core_limit,
        )

    def append_notice(self, signals: MaintenanceSignals, *, now: datetime | None = None) -> bool:
        """Append the maintenance notice once. Returns True if it was written."""
        if not signals.any_bloated:
            return False
        now = now or datetime.now(timezone.utc)
        path = self.daily_path(now)
        existing = read_text_if_exists(path)
        if MAINTENANCE_MARKER in existing:
            return False
        atomic_write_text(path, append_section(existing, render_maintenance_notice(signals)))
        return True

    def clear_notice(self, *, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        path = self.daily_path(now)
        existing = read_text_if_exists(path)
        if MAINTENANCE_MARKER not in existing:
            return False
        atomic_write_text(path, strip_maintenance_notice(existing))
        return True

    def optimize(self, *, now: datetime | None = None) -> OptimizationResult:
        """Archive full snapshots of bloated documents, then compact them."""
        now = now or datetime.now(timezone.utc)
        signals = self.signals(now=now)
        if not signals.any_bloated:
            return OptimizationResult(changed=False, reason="nothing_to_optimize")

        stamp = archive_stamp(now)
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        result = OptimizationResult(changed=False)

        if signals.core.exists and signals.core.bloated:
            raw = read_text_if_exists(signals.core.path)
            archive_path = self.archive_dir / f"MEMORY-full-{stamp}.md"
            atomic_write_text(archive_path, raw)
            compacted = [
                "# MEMORY.md (compacted)",
                "",
                f"Compacted at {now.isoformat()} with explicit user permission.",
                f"Full snapshot archived at: {archive_path}",
                "",
                "## Active Summary",
                *build_compact_summary(raw),
                "",
                "## Notes",
                "- Historical details remain in the archive snapshot above.",
            ]
            atomic_write_text(signals.core.path, "\n".join(compacted))
            result.actions.append(OptimizationAction("core", signals.core.path, archive_path))

        if signals.daily.exists and signals.daily.bloated:
            raw = read_text_if_exists(signals.daily.path)
            archive_path = self.archive_dir / f"daily-{signals.daily.path.stem}-full-{stamp}.md"
            atomic_write_text(archive_path, raw)
            compact_daily_document(signals.daily.path, now=now)
            result.actions.append(OptimizationAction("daily", signals.daily.path, archive_path))

        result.changed = bool(result.actions)
        LOGGER.info("Optimized %d memory documents", len(result.actions))
        return result
