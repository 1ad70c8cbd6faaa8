"""Adapter between host runtime events and the retrieval/lifecycle engine.

The host dispatches ``startup`` and ``command`` events. ``command`` events
carry an action (``new``, ``reset``, ``stop`` or an ordinary turn) and a
session id. Everything host-specific about transcripts sits behind
:class:`~adaptive_memory.lifecycle.transcripts.TranscriptSource`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from adaptive_memory.config import FALLBACK_LOAD_ALL, AppConfig
from adaptive_memory.index.indexer import Indexer
from adaptive_memory.index.search import Searcher
from adaptive_memory.index.storage import ChunkCache
from adaptive_memory.inject.writer import InjectionWriter
from adaptive_memory.lifecycle.compaction import MemoryCompactor
from adaptive_memory.lifecycle.consent import ConsentDecision
from adaptive_memory.lifecycle.digest import SessionDigest
from adaptive_memory.lifecycle.machine import LifecycleManager, LifecycleReport
from adaptive_memory.lifecycle.state import MaintenanceStore, SessionMarkers
from adaptive_memory.lifecycle.transcripts import JsonlTranscriptStore, TranscriptSource
from adaptive_memory.models import ChunkPreview, HookResult
from adaptive_memory.utils.text import extract_intent, should_search_memory

LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 120
STARTUP_EVENT_TYPES = {"startup", "gateway:startup"}


class EventKind(str, Enum):
    STARTUP = "startup"
    NEW = "new"
    RESET = "reset"
    STOP = "stop"
    TURN = "turn"


@dataclass(slots=True, frozen=True)
class HookEvent:
    kind: EventKind
    session_id: str | None = None
    message: str | None = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "HookEvent | None":
        """Parse a host event; returns None for anything that should be ignored."""
        if not isinstance(data, dict):
            return None
        event_type = str(data.get("type") or "")
        if event_type in STARTUP_EVENT_TYPES:
            return cls(kind=EventKind.STARTUP)
        if event_type != "command":
            return None

        session_id = data.get("sessionKey", data.get("session_id"))
        if not isinstance(session_id, str) or not session_id.strip():
            return None
        message = data.get("message")
        action = str(data.get("action") or "").lower()
        try:
            kind = EventKind(action) if action else EventKind.TURN
        except ValueError:
            kind = EventKind.TURN
        if kind is EventKind.STARTUP:
            kind = EventKind.TURN
        return cls(
            kind=kind,
            session_id=session_id.strip(),
            message=message if isinstance(message, str) else None,
        )


@dataclass(slots=True)
class EventOutcome:
    kind: EventKind
    report: LifecycleReport | None = None
    decision: ConsentDecision | None = None
    result: HookResult | None = None


_memory_dir_warned = False


def _warn_if_memory_dir_unusable(memory_dir: Path) -> None:
    """Warn once per process when the corpus root is missing or not a directory."""
    global _memory_dir_warned
    if _memory_dir_warned:
        return
    if memory_dir.is_dir():
        return
    _memory_dir_warned = True
    if memory_dir.exists():
        LOGGER.warning("Memory dir is not a directory: %s", memory_dir)
    else:
        LOGGER.warning("Memory dir missing or not readable: %s", memory_dir)
    LOGGER.warning(
        "Set ADAPTIVE_MEMORY_DIR or ADAPTIVE_MEMORY_PROJECT_DIR (project root with a memory/ "
        "subdir), or create the directory."
    )


class AdaptiveMemory:
    """Wires every component from one :class:`AppConfig`."""

    def __init__(self, config: AppConfig, *, transcripts: TranscriptSource | None = None) -> None:
        self.config = config
        self.cache = ChunkCache(
            config.cache_path,
            max_files=config.max_cache_files,
            max_bytes=config.max_cache_bytes,
            max_chunk_chars=config.max_chunk_chars,
            max_chunks_per_file=config.max_chunks_per_file,
        )
        self.searcher = Searcher(
            self.cache,
            config.memory_dir,
            gate_min_keywords=config.coverage_gate_min_keywords,
            gate_min_hits=config.coverage_gate_min_hits,
        )
        self.writer = InjectionWriter(
            config.memory_dir,
            max_total_chars=config.max_injected_chars_total,
            max_snippet_chars=config.max_snippet_chars_each,
        )
        transcript_store = JsonlTranscriptStore(config.sessions_dir)
        self.transcripts: TranscriptSource = transcripts or transcript_store
        self.markers = SessionMarkers(config.session_markers_dir)
        self.store = MaintenanceStore(config.maintenance_state_path)
        self.compactor = MemoryCompactor(
            config.memory_dir,
            config.resolve_core_memory_path(),
            config.archive_dir,
            daily_limit=config.daily_bloat_bytes,
            core_limit=config.core_bloat_bytes,
        )
        self.lifecycle = LifecycleManager(
            Indexer(self.cache, config.memory_dir),
            self.compactor,
            SessionDigest(
                transcript_store,
                config.digest_path,
                config.digest_state_path,
                max_sessions=config.digest_max_sessions,
                max_chars=config.digest_max_chars,
            ),
            self.store,
            self.markers,
            snooze_hours=config.snooze_hours,
        )

    def handle_first_message(
        self, session_id: str, message: str | None, *, now: datetime | None = None
    ) -> HookResult:
        """Search memory for the first user message and inject the best chunks."""
        config = self.config
        if not config.enabled:
            return HookResult(success=True, status="disabled", reason="Adaptive memory disabled")

        _warn_if_memory_dir_unusable(config.memory_dir)

        try:
            intent = extract_intent(message)
            if not intent:
                return HookResult(
                    success=True, status="skipped_short", reason="Could not extract intent"
                )
            if not should_search_memory(intent):
                return HookResult(
                    success=True,
                    status="skipped_heuristic",
                    reason="Heuristic: technical-only prompt, memory search skipped",
                )

            # Relaxed first pass, strict threshold afterwards
            results = self.searcher.search(
                intent,
                max_results=config.max_results_per_search or max(config.search_top_k * 3, 10),
                min_score=config.min_relevance_score * 0.8,
            )
            relevant = [result for result in results if result.score >= config.min_relevance_score]
            chunks = relevant[: config.search_top_k]
            if not chunks:
                return HookResult(
                    success=True,
                    status="no_relevant_memory",
                    reason="No relevant memory above threshold",
                    found=len(results),
                )

            injected = self.writer.inject(session_id, intent, chunks, now=now)
            previews: List[ChunkPreview] = [
                ChunkPreview(
                    path=str(chunk.path),
                    score=chunk.score,
                    preview=f"{chunk.snippet[:PREVIEW_CHARS]}...",
                )
                for chunk in chunks[:injected]
            ]
            return HookResult(
                success=True,
                status="injected",
                found=len(relevant),
                injected=injected,
                chunks=previews,
            )
        except Exception as exc:
            LOGGER.exception("Adaptive memory hook error")
            if config.fallback_behavior == FALLBACK_LOAD_ALL:
                fallback = "loaded_all_memory"
            else:
                fallback = "continue_without_context"
            return HookResult(success=False, status="error", fallback=fallback, error=str(exc))

    def handle_event(self, event: HookEvent | None, *, now: datetime | None = None) -> EventOutcome | None:
        if event is None:
            return None
        now = now or datetime.now(timezone.utc)

        if event.kind is EventKind.STARTUP:
            return EventOutcome(kind=event.kind, report=self.lifecycle.on_startup(now=now))
        if not event.session_id:
            return None
        if event.kind in (EventKind.NEW, EventKind.RESET):
            return EventOutcome(
                kind=event.kind,
                report=self.lifecycle.on_session_start(event.session_id, now=now),
            )
        if event.kind is EventKind.STOP:
            return None
        return self._handle_turn(event, now)

    def _user_turns(self, session_id: str) -> List[str]:
        try:
            return self.transcripts.user_turns(session_id)
        except Exception:
            LOGGER.exception("Reading transcript for session %s failed", session_id)
            return []

    def _handle_turn(self, event: HookEvent, now: datetime) -> EventOutcome:
        outcome = EventOutcome(kind=event.kind)
        session_id = event.session_id or ""
        turns = self._user_turns(session_id)

        latest = event.message or (turns[-1] if turns else None)
        try:
            outcome.decision = self.lifecycle.on_user_message(latest, now=now)
        except Exception:
            LOGGER.exception("Consent check failed")

        try:
            if self.markers.has(session_id):
                return outcome
        except OSError:
            LOGGER.exception("Reading processed marker for session %s failed", session_id)
            return outcome

        first = turns[0] if turns else event.message
        if not first:
            return outcome
        outcome.result = self.handle_first_message(session_id, first, now=now)
        # Once per session, whether or not anything was injected
        try:
            self.markers.mark(session_id)
        except OSError:
            LOGGER.exception("Marking session %s as processed failed", session_id)
        return outcome
