"""Text helpers including markdown-aware chunking."""

from __future__ import annotations

import re
from typing import List

HEADING_SPLIT_RE = re.compile(r"\n(?=#+\s)")
PARAGRAPH_SPLIT_RE = re.compile(r"\n\n+")

_FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_SYSTEM_PREFIX_RE = re.compile(r"^System:\s*\[.*?\]\s*", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

MIN_INTENT_CHARS = 10
MAX_INTENT_CHARS = 280


def chunk_markdown(text: str, *, max_chars: int = 1200, max_chunks: int = 200) -> List[str]:
    """Split markdown into chunks on heading boundaries, then paragraphs.

    Paragraphs are packed into a buffer until the next one would push it
    past ``max_chars``. A single paragraph longer than ``max_chars`` becomes
    its own oversized chunk. Chunks beyond ``max_chunks`` are dropped.
    """
    chunks: List[str] = []
    if not text:
        return chunks

    for block in HEADING_SPLIT_RE.split(text):
        buffer = ""
        for paragraph in PARAGRAPH_SPLIT_RE.split(block):
            candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
            if len(candidate) > max_chars:
                if buffer.strip():
                    chunks.append(buffer.strip())
                buffer = paragraph
            else:
                buffer = candidate
        if buffer.strip():
            chunks.append(buffer.strip())

    return chunks[:max_chunks]


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def extract_intent(message: str | None) -> str | None:
    """Turn a raw user message into a search intent.

    Code blocks, inline code and a leading ``System: [...]`` prefix are
    noise for intent detection and get removed. Returns ``None`` when too
    little text remains.
    """
    if not message or not isinstance(message, str):
        return None

    text = _FENCED_CODE_RE.sub(" ", message)
    text = _INLINE_CODE_RE.sub(" ", text)
    text = _SYSTEM_PREFIX_RE.sub("", text)
    text = collapse_whitespace(text)

    if len(text) < MIN_INTENT_CHARS:
        return None
    return text[:MAX_INTENT_CHARS]


_TECH_TERMS = ("error", "stack", "trace", "npm ", "pip ", "docker", "bash", "zsh", "compile")
_TECH_SHAPE_RE = re.compile(r"[{};<>]=|function\s*\(|class\s+")
_PERSONAL_RE = re.compile(
    r"\b(my|mine|we|our|project|store|customer|repo|deploy|ship|launch)\b", re.IGNORECASE
)


def should_search_memory(intent: str) -> bool:
    """Return False for purely technical prompts without personal/project cues."""
    lowered = intent.lower()
    looks_technical = any(term in lowered for term in _TECH_TERMS) or bool(
        _TECH_SHAPE_RE.search(lowered)
    )
    if looks_technical and not _PERSONAL_RE.search(lowered):
        return False
    return True
