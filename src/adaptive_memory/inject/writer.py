"""Append bounded retrieval results to the dated output document."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence, Tuple

from adaptive_memory.inject.sections import (
    SESSION_END_MARKER,
    append_section,
    sanitize_session_id,
    session_marker,
)
from adaptive_memory.models import SearchResult
from adaptive_memory.utils.files import atomic_write_text, daily_path, read_text_if_exists

LOGGER = logging.getLogger(__name__)


class InjectionWriter:
    """Writes at most one injection section per (session, day)."""

    def __init__(
        self,
        memory_dir: Path,
        *,
        max_total_chars: int = 4000,
        max_snippet_chars: int = 800,
    ) -> None:
        self.memory_dir = Path(memory_dir)
        self.max_total_chars = max_total_chars
        self.max_snippet_chars = max_snippet_chars

    def build_section(
        self,
        session_id: str,
        query: str,
        chunks: Sequence[SearchResult],
        *,
        now: datetime | None = None,
    ) -> Tuple[str, int]:
        """Render the section, stopping once the total snippet budget is spent.

        Returns the section text and the number of chunks it holds.
        """
        now = now or datetime.now(timezone.utc)
        budget = self.max_total_chars
        lines: List[str] = [
            session_marker(session_id),
            "## Adaptive Memory Context (auto-injected)",
            f"*Loaded at {now.isoformat()} | session: {sanitize_session_id(session_id)}*",
            "",
            f"Query: {query}",
            "",
        ]

        rendered = 0
        for position, chunk in enumerate(chunks, start=1):
            source = Path(chunk.path).name if chunk.path else "unknown"
            rendered += 1
            lines.extend([f"### {position}. {source} (relevance: {chunk.score * 100:.0f}%)", ""])

            snippet = (chunk.snippet or "").strip()[: self.max_snippet_chars]
            take = snippet[: max(0, budget)]
            budget -= len(take)
            if take:
                lines.extend([take, ""])
            if budget <= 0:
                break

        lines.extend(["---", SESSION_END_MARKER])
        return "\n".join(lines), rendered

    def inject(
        self,
        session_id: str,
        query: str,
        chunks: Sequence[SearchResult],
        *,
        now: datetime | None = None,
    ) -> int:
        """Append a section for ``session_id`` to today's document.

        Returns the number of chunks injected, or 0 if this session already
        has a section in today's document.
        """
        if not chunks:
            return 0

        now = now or datetime.now(timezone.utc)
        target = daily_path(self.memory_dir, now.date())
        existing = read_text_if_exists(target)
        if session_marker(session_id) in existing:
            LOGGER.debug("Session %s already injected into %s", session_id, target)
            return 0

        section, rendered = self.build_section(session_id, query, chunks, now=now)
        atomic_write_text(target, append_section(existing, section))
        LOGGER.info("Injected %d chunks into %s (session: %s)", rendered, target, session_id)
        return rendered
