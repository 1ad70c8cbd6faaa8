"""Marker-delimited sections inside the dated output document."""

from __future__ import annotations

import re
from typing import List, Tuple

SESSION_MARKER_PREFIX = "<!-- adaptive-memory:session="
SESSION_END_MARKER = "<!-- adaptive-memory:session:end -->"
DIGEST_START_MARKER = "<!-- adaptive-memory:digest:start -->"
DIGEST_END_MARKER = "<!-- adaptive-memory:digest:end -->"
MAINTENANCE_MARKER = "<!-- adaptive-memory:maintenance:pending -->"
MAINTENANCE_END_MARKER = "<!-- adaptive-memory:maintenance:end -->"

SESSION_SECTION_RE = re.compile(
    r"<!-- adaptive-memory:session=[^>]*-->.*?<!-- adaptive-memory:session:end -->\s*",
    re.DOTALL,
)
DIGEST_SECTION_RE = re.compile(
    re.escape(DIGEST_START_MARKER) + r".*?" + re.escape(DIGEST_END_MARKER) + r"\s*",
    re.DOTALL,
)
MAINTENANCE_SECTION_RE = re.compile(
    re.escape(MAINTENANCE_MARKER) + r".*?" + re.escape(MAINTENANCE_END_MARKER) + r"\s*",
    re.DOTALL,
)

_UNSAFE_MARKER_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
_DASH_RUN_RE = re.compile(r"-{2,}")
MAX_MARKER_ID_CHARS = 128


def sanitize_session_id(session_id: str) -> str:
    """Make a session id safe inside an HTML comment.

    Restricts to ``[A-Za-z0-9._-]`` and collapses dash runs so ``--`` can
    never terminate the comment early.
    """
    safe = _UNSAFE_MARKER_CHARS_RE.sub("_", str(session_id))
    safe = _DASH_RUN_RE.sub("-", safe)
    return safe[:MAX_MARKER_ID_CHARS]


def session_marker(session_id: str) -> str:
    return f"{SESSION_MARKER_PREFIX}{sanitize_session_id(session_id)} -->"


def strip_injection_sections(content: str) -> Tuple[str, List[str]]:
    """Remove every injection section, returning the rest and the removed blocks."""
    sections = SESSION_SECTION_RE.findall(content)
    return SESSION_SECTION_RE.sub("", content).strip(), sections


def strip_digest_sections(content: str) -> str:
    return DIGEST_SECTION_RE.sub("", content).strip()


def strip_maintenance_notice(content: str) -> str:
    return MAINTENANCE_SECTION_RE.sub("", content or "").strip()


def append_section(existing: str, section: str) -> str:
    return f"{existing}\n\n{section}" if existing else section
