"""Persistent mtime-keyed chunk cache."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

from adaptive_memory.models import CacheEntry, Chunk
from adaptive_memory.utils.files import atomic_write_text
from adaptive_memory.utils.text import chunk_markdown

LOGGER = logging.getLogger(__name__)

CACHE_VERSION = 1


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=True)


class ChunkCache:
    """Map of document path -> (mtime, chunks), persisted as one JSON file.

    A document is re-read and re-chunked only when its mtime differs from the
    stored one. The file on disk is rewritten only when an entry changed.
    """

    def __init__(
        self,
        cache_path: Path,
        *,
        max_files: int = 500,
        max_bytes: int = 10 * 1024 * 1024,
        max_chunk_chars: int = 1200,
        max_chunks_per_file: int = 200,
    ) -> None:
        self.cache_path = Path(cache_path)
        self.max_files = max_files
        self.max_bytes = max_bytes
        self.max_chunk_chars = max_chunk_chars
        self.max_chunks_per_file = max_chunks_per_file
        self.entries: Dict[str, CacheEntry] = {}
        self.dirty = False
        self.refreshed = 0
        self.reused = 0
        self.written = False
        self.load()

    def load(self) -> None:
        """Load the persisted cache; anything unreadable yields an empty cache."""
        self.entries = {}
        self.dirty = False
        try:
            raw = self.cache_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.warning("Cannot read chunk cache %s: %s", self.cache_path, exc)
            return
        try:
            self.entries = self.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            LOGGER.warning("Chunk cache %s is corrupt, rebuilding: %s", self.cache_path, exc)
            self.entries = {}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Dict[str, CacheEntry]:
        files = data["files"]
        if not isinstance(files, dict):
            raise TypeError("'files' must be an object")
        return {str(path): CacheEntry.from_dict(entry) for path, entry in files.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CACHE_VERSION,
            "files": {path: entry.to_dict() for path, entry in self.entries.items()},
        }

    def save(self) -> None:
        atomic_write_text(self.cache_path, _dumps(self.to_dict()))
        self.dirty = False
        LOGGER.debug("Chunk cache written to %s (%d files)", self.cache_path, len(self.entries))

    def get_or_refresh(self, path: Path) -> List[Chunk]:
        """Return chunks for ``path``, re-chunking it if its mtime changed.

        Raises ``OSError`` when the document cannot be stat'ed or read.
        """
        key = str(path)
        mtime = Path(path).stat().st_mtime
        entry = self.entries.get(key)
        if entry is not None and entry.mtime == mtime:
            self.reused += 1
            return entry.chunks

        text = Path(path).read_text(encoding="utf-8", errors="replace")
        chunks = [
            Chunk(text=piece)
            for piece in chunk_markdown(
                text, max_chars=self.max_chunk_chars, max_chunks=self.max_chunks_per_file
            )
        ]
        self.entries[key] = CacheEntry(mtime=mtime, chunks=chunks)
        self.dirty = True
        self.refreshed += 1
        return chunks

    def prune(self, current_paths: Iterable[Path]) -> int:
        """Drop entries for documents no longer present in the corpus."""
        keep = {str(path) for path in current_paths}
        stale = [key for key in self.entries if key not in keep]
        for key in stale:
            del self.entries[key]
        if stale:
            self.dirty = True
        return len(stale)

    def _oldest_first(self) -> List[str]:
        return sorted(self.entries, key=lambda key: self.entries[key].mtime)

    def enforce_limits(self) -> int:
        """Evict oldest-modified entries until count and byte ceilings hold."""
        evicted = 0
        if len(self.entries) > self.max_files:
            for key in self._oldest_first()[: len(self.entries) - self.max_files]:
                del self.entries[key]
                evicted += 1

        if self.dirty or evicted:
            size = len(_dumps(self.to_dict()))
            if size > self.max_bytes:
                for key in self._oldest_first():
                    if size <= self.max_bytes:
                        break
                    # key, colon, entry and the separating comma
                    size -= len(_dumps(key)) + len(_dumps(self.entries[key].to_dict())) + 2
                    del self.entries[key]
                    evicted += 1
                while self.entries and len(_dumps(self.to_dict())) > self.max_bytes:
                    del self.entries[self._oldest_first()[0]]
                    evicted += 1

        if evicted:
            self.dirty = True
            LOGGER.debug("Evicted %d chunk cache entries", evicted)
        return evicted

    def flush(self, current_paths: Iterable[Path]) -> bool:
        """Prune, bound and persist the cache. Returns True if it was written."""
        self.prune(current_paths)
        self.enforce_limits()
        if not self.dirty:
            return False
        self.save()
        return True

    @contextmanager
    def batch(self, current_paths: Iterable[Path]) -> Iterator["ChunkCache"]:
        """Group lookups for one corpus pass; flushes once on success."""
        paths = list(current_paths)
        self.refreshed = 0
        self.reused = 0
        self.written = False
        yield self
        self.written = self.flush(paths)
