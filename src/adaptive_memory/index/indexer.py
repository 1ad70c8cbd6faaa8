"""Chunk cache warmup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from adaptive_memory.index.storage import ChunkCache
from adaptive_memory.utils.files import iter_memory_files

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class WarmStats:
    files_seen: int = 0
    refreshed: int = 0
    reused: int = 0
    failed: int = 0
    cache_written: bool = False
    failed_files: list[Path] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "files_seen": self.files_seen,
            "refreshed": self.refreshed,
            "reused": self.reused,
            "failed": self.failed,
            "cache_written": self.cache_written,
        }


class Indexer:
    """Touches every corpus document once so the first search is cheap."""

    def __init__(self, cache: ChunkCache, memory_dir: Path) -> None:
        self.cache = cache
        self.memory_dir = Path(memory_dir)

    def warm(self) -> WarmStats:
        files = list(iter_memory_files(self.memory_dir))
        stats = WarmStats(files_seen=len(files))

        with self.cache.batch(files):
            for path in files:
                try:
                    self.cache.get_or_refresh(path)
                except OSError as exc:
                    LOGGER.debug("Skipping unreadable %s during warmup: %s", path, exc)
                    stats.failed += 1
                    stats.failed_files.append(path)

        stats.refreshed = self.cache.refreshed
        stats.reused = self.cache.reused
        stats.cache_written = self.cache.written
        LOGGER.info(
            "Cache warmup: %d files, %d refreshed, %d reused",
            stats.files_seen,
            stats.refreshed,
            stats.reused,
        )
        return stats
