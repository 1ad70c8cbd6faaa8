"""Core adaptive memory data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List


@dataclass(slots=True)
class Chunk:
    """Bounded excerpt of a document, original casing preserved."""

    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True)
class CacheEntry:
    """Chunks of one document as of its last seen modification time."""

    mtime: float
    chunks: List[Chunk] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"mtime": self.mtime, "chunks": [chunk.to_dict() for chunk in self.chunks]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        chunks = [Chunk(text=str(item.get("text", ""))) for item in data.get("chunks", [])]
        return cls(mtime=float(data["mtime"]), chunks=chunks)


@dataclass(slots=True)
class SearchResult:
    path: Path
    score: float
    snippet: str


@dataclass(slots=True)
class ChunkPreview:
    path: str
    score: float
    preview: str


@dataclass(slots=True)
class HookResult:
    """Outcome of a first-message injection attempt.

    ``status`` is one of ``disabled``, ``skipped_short``,
    ``skipped_heuristic``, ``no_relevant_memory``, ``injected`` or
    ``error``; ``fallback`` is only set for ``error``.
    """

    success: bool
    status: str
    reason: str = ""
    found: int = 0
    injected: int = 0
    chunks: List[ChunkPreview] = field(default_factory=list)
    fallback: str | None = None
    error: str | None = None

    @property
    def skipped(self) -> bool:
        return self.status in {"disabled", "skipped_short", "skipped_heuristic"}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
