"""Cross-session digest built from recent transcripts."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List

from adaptive_memory.lifecycle.transcripts import JsonlTranscriptStore, TranscriptMessage
from adaptive_memory.utils.files import atomic_write_text, read_text_if_exists
from adaptive_memory.utils.text import collapse_whitespace

LOGGER = logging.getLogger(__name__)

MAX_SAMPLE_CHARS = 260
MAX_TOPICS = 8
MAX_ITEMS = 8
MIN_TOPIC_CHARS = 4
TOPIC_STOP_WORDS = frozenset(
    {"that", "this", "with", "from", "what", "when", "where", "have", "your", "about"}
)

_TOPIC_STRIP_RE = re.compile(r"[^a-z0-9_-]")
_OPEN_THREAD_RE = re.compile(r"\b(open|follow[- ]?up|pending|blocker|next step)\b", re.IGNORECASE)
_DECISION_RE = re.compile(
    r"\b(decided|decision|we will|plan to|agreed|next step|ship|launch)\b", re.IGNORECASE
)
_UPDATED_LINE_RE = re.compile(r"^\*Updated: .*\*$", re.MULTILINE)


def sample_text(text: str) -> str | None:
    clean = collapse_whitespace(text)
    if not clean:
        return None
    if len(clean) > MAX_SAMPLE_CHARS:
        return f"{clean[: MAX_SAMPLE_CHARS - 3]}..."
    return clean


@dataclass(slots=True)
class DigestContent:
    topics: Counter = field(default_factory=Counter)
    decisions: List[str] = field(default_factory=list)
    open_threads: List[str] = field(default_factory=list)

    def add(self, message: TranscriptMessage) -> None:
        sample = sample_text(message.text)
        if not sample:
            return
        if message.role == "user":
            for word in sample.lower().split():
                word = _TOPIC_STRIP_RE.sub("", word)
                if len(word) >= MIN_TOPIC_CHARS and word not in TOPIC_STOP_WORDS:
                    self.topics[word] += 1
            if sample.endswith("?") or _OPEN_THREAD_RE.search(sample):
                self.open_threads.append(sample)
        if _DECISION_RE.search(sample):
            self.decisions.append(sample)


def _unique(items: Iterable[str], limit: int) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
        if len(seen) >= limit:
            break
    return [f"- {item}" for item in seen]


def render_digest(content: DigestContent, sessions: int, *, now: datetime) -> str:
    # most_common keeps first-seen order among equal counts
    topics = [f"- {word} ({count})" for word, count in content.topics.most_common(MAX_TOPICS)]
    decisions = _unique(content.decisions, MAX_ITEMS)
    threads = _unique(content.open_threads, MAX_ITEMS)
    none = ["- (none detected)"]
    lines = [
        "# Session Digest (auto-generated)",
        f"*Updated: {now.isoformat()} | sessions scanned: {sessions}*",
        "",
        "## Active topics",
        *(topics or none),
        "",
        "## Recent decisions",
        *(decisions or none),
        "",
        "## Open threads",
        *(threads or none),
        "",
        "_This digest is intentionally compact for startup context._",
    ]
    return "\n".join(lines)


def _without_timestamp(text: str) -> str:
    return _UPDATED_LINE_RE.sub("", text).strip()


@dataclass(slots=True)
class DigestResult:
    changed: bool
    sessions: int = 0
    path: Path | None = None
    reason: str = ""


class SessionDigest:
    """Regenerates ``session-digest.md`` when recent transcripts change."""

    def __init__(
        self,
        transcripts: JsonlTranscriptStore,
        digest_path: Path,
        state_path: Path,
        *,
        max_sessions: int = 8,
        max_chars: int = 8000,
    ) -> None:
        self.transcripts = transcripts
        self.digest_path = Path(digest_path)
        self.state_path = Path(state_path)
        self.max_sessions = max_sessions
        self.max_chars = max_chars

    def _load_mtimes(self) -> Dict[str, float]:
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
            mtimes = data.get("fileMtimes", {})
            return mtimes if isinstance(mtimes, dict) else {}
        except FileNotFoundError:
            return {}
        except (OSError, ValueError, AttributeError) as exc:
            LOGGER.debug("Digest state %s unreadable: %s", self.state_path, exc)
            return {}

    def refresh(self, *, now: datetime | None = None) -> DigestResult:
        now = now or datetime.now(timezone.utc)
        try:
            recent = self.transcripts.recent_transcripts(self.max_sessions)
        except OSError as exc:
            LOGGER.debug("Transcripts unavailable at %s: %s", self.transcripts.sessions_dir, exc)
            return DigestResult(changed=False, reason="sessions_dir_unavailable")

        previous = self._load_mtimes()
        if all(previous.get(str(item.path)) == item.mtime for item in recent):
            return DigestResult(
                changed=False, sessions=len(recent), path=self.digest_path, reason="unchanged"
            )

        content = DigestContent()
        mtimes: Dict[str, float] = {}
        failed = 0
        for item in recent:
            try:
                messages = list(self.transcripts.iter_messages(item.path))
            except OSError as exc:
                LOGGER.warning("Skipping unreadable transcript %s: %s", item.path, exc)
                failed += 1
                continue
            for message in messages:
                content.add(message)
            mtimes[str(item.path)] = item.mtime

        existing = read_text_if_exists(self.digest_path)
        if failed and existing:
            # Unread transcripts keep no recorded mtime, so the next refresh retries them
            self._save_mtimes(mtimes)
            return DigestResult(
                changed=False, sessions=len(recent), path=self.digest_path, reason="read_failed"
            )

        rendered = render_digest(content, len(recent), now=now)[: self.max_chars]
        if _without_timestamp(existing) == _without_timestamp(rendered):
            self._save_mtimes(mtimes)
            return DigestResult(changed=False, sessions=len(recent), path=self.digest_path)

        atomic_write_text(self.digest_path, rendered)
        self._save_mtimes(mtimes)
        LOGGER.info("Session digest refreshed from %d transcripts", len(recent))
        return DigestResult(changed=True, sessions=len(recent), path=self.digest_path)

    def _save_mtimes(self, mtimes: Dict[str, float]) -> None:
        atomic_write_text(self.state_path, json.dumps({"fileMtimes": mtimes}))
