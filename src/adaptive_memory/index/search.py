"""Keyword search over the memory corpus."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from adaptive_memory.index.scoring import build_matchers, extract_keywords, score_chunk
from adaptive_memory.index.storage import ChunkCache
from adaptive_memory.models import SearchResult
from adaptive_memory.utils.files import iter_memory_files

LOGGER = logging.getLogger(__name__)

MIN_QUERY_CHARS = 3


class Searcher:
    """High-level API to rank cached chunks against a free-text query."""

    def __init__(
        self,
        cache: ChunkCache,
        memory_dir: Path,
        *,
        gate_min_keywords: int = 4,
        gate_min_hits: int = 2,
    ) -> None:
        self.cache = cache
        self.memory_dir = Path(memory_dir)
        self.gate_min_keywords = gate_min_keywords
        self.gate_min_hits = gate_min_hits

    def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        min_score: float = 0.5,
        memory_dir: Path | None = None,
    ) -> List[SearchResult]:
        if not query or not isinstance(query, str) or len(query) < MIN_QUERY_CHARS:
            return []

        matchers = build_matchers(extract_keywords(query))
        if not matchers:
            return []

        root = Path(memory_dir) if memory_dir is not None else self.memory_dir
        files = list(iter_memory_files(root))
        if not files:
            LOGGER.debug("No memory files found in %s", root)
            return []

        LOGGER.debug("Searching %d files for %r", len(files), query[:50])
        results: List[SearchResult] = []
        with self.cache.batch(files):
            for path in files:
                try:
                    chunks = self.cache.get_or_refresh(path)
                except OSError as exc:
                    LOGGER.debug("Skipping unreadable %s: %s", path, exc)
                    continue
                for chunk in chunks:
                    score = score_chunk(
                        matchers,
                        chunk.text.lower(),
                        gate_min_keywords=self.gate_min_keywords,
                        gate_min_hits=self.gate_min_hits,
                    )
                    if score >= min_score:
                        results.append(SearchResult(path=path, score=score, snippet=chunk.text))

        # sorted() is stable: ties keep scan order
        results = sorted(results, key=lambda result: result.score, reverse=True)
        return results[:max_results]
