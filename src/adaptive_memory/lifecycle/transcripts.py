"""Reading session transcripts written by the host runtime."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol, Sequence, runtime_checkable

LOGGER = logging.getLogger(__name__)

MAX_LINES_PER_TRANSCRIPT = 2000
TRANSCRIPT_SUFFIX = ".jsonl"


@runtime_checkable
class TranscriptSource(Protocol):
    def user_turns(self, session_id: str) -> List[str]:
        """Ordered (oldest first) user message texts for a session."""
        ...


def normalize_message_content(content: Any) -> str:
    """Flatten string, list-of-parts or object message content to text."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict):
                text = part.get("text", part.get("content"))
                if isinstance(text, str):
                    parts.append(text)
        return "\n".join(part for part in parts if part).strip()
    if isinstance(content, dict):
        for key in ("text", "content"):
            if isinstance(content.get(key), str):
                return content[key].strip()
    return ""


@dataclass(slots=True)
class TranscriptMessage:
    role: str
    text: str
    timestamp: str | None = None


def _parse_timestamp(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def order_messages(messages: Sequence[TranscriptMessage]) -> List[TranscriptMessage]:
    """Sort by timestamp when every message has one, else keep file order."""
    if messages and all(message.timestamp for message in messages):
        return sorted(messages, key=lambda message: _parse_timestamp(message.timestamp))
    return list(messages)


@dataclass(slots=True)
class TranscriptFile:
    path: Path
    mtime: float


class JsonlTranscriptStore:
    """Transcripts stored as ``<sessions_dir>/<session id>.jsonl``.

    Each line is a JSON event; only ``{"type": "message", "message":
    {"role", "content", "timestamp"?}}`` lines are considered.
    """

    def __init__(self, sessions_dir: Path) -> None:
        self.sessions_dir = Path(sessions_dir)

    def path_for(self, session_id: str) -> Path | None:
        name = str(session_id)
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        return self.sessions_dir / f"{name}{TRANSCRIPT_SUFFIX}"

    def iter_messages(self, path: Path) -> Iterator[TranscriptMessage]:
        """Yield messages from one transcript; raises ``OSError`` if unreadable."""
        with Path(path).open("r", encoding="utf-8", errors="replace") as handle:
            for line_number, line in enumerate(handle, start=1):
                if line_number > MAX_LINES_PER_TRANSCRIPT:
                    break
                if not line.strip():
                    continue
                try:
                    parsed = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(parsed, dict) or parsed.get("type") != "message":
                    continue
                message: Dict[str, Any] = parsed.get("message") or {}
                if not isinstance(message, dict):
                    continue
                yield TranscriptMessage(
                    role=str(message.get("role", "")),
                    text=normalize_message_content(message.get("content")),
                    timestamp=message.get("timestamp") or parsed.get("timestamp"),
                )

    def user_turns(self, session_id: str) -> List[str]:
        path = self.path_for(session_id)
        if path is None:
            return []
        try:
            messages = order_messages(list(self.iter_messages(path)))
        except FileNotFoundError:
            return []
        except OSError as exc:
            LOGGER.warning("Cannot read transcript %s: %s", path, exc)
            return []
        return [message.text for message in messages if message.role == "user" and message.text]

    def recent_transcripts(self, limit: int) -> List[TranscriptFile]:
        """Most recently modified transcripts first; raises ``OSError`` if the dir is unreadable."""
        found: List[TranscriptFile] = []
        for entry in self.sessions_dir.iterdir():
            if not entry.name.endswith(TRANSCRIPT_SUFFIX) or ".deleted." in entry.name:
                continue
            try:
                if entry.is_file():
                    found.append(TranscriptFile(path=entry, mtime=entry.stat().st_mtime))
            except OSError as exc:
                LOGGER.debug("Skipping transcript %s: %s", entry, exc)
        found.sort(key=lambda item: item.mtime, reverse=True)
        return found[:limit]


class StaticTranscript:
    """In-memory transcript, for hosts that pass messages with the event."""

    def __init__(self, turns: Dict[str, List[str]] | None = None) -> None:
        self.turns = turns or {}

    def add(self, session_id: str, text: str) -> None:
        self.turns.setdefault(session_id, []).append(text)

    def user_turns(self, session_id: str) -> List[str]:
        return list(self.turns.get(session_id, []))
