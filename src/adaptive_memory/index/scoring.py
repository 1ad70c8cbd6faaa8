"""Keyword extraction and lexical relevance scoring."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Pattern, Sequence

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
        "her", "was", "one", "our", "out", "has", "have", "been", "some", "them",
        "than", "its", "over", "into", "just", "about", "what", "which", "when",
        "make", "like", "how", "each", "from", "this", "that", "with", "they",
        "will", "would", "there", "their", "could", "other", "more", "very",
        "after", "most", "also", "made", "then", "many", "before", "should",
        "these", "where", "being", "does", "show", "tell", "give", "help",
        "remind", "please",
    }
)

_DISALLOWED_RE = re.compile(r"[^a-z0-9_+#.\-]")
_WORD_ONLY_RE = re.compile(r"^[A-Za-z0-9_]+$")

COVERAGE_WEIGHT = 0.85
REPEAT_WEIGHT = 0.3
REPEAT_FACTOR = 0.2
REPEAT_CAP = 0.5


def extract_keywords(query: str) -> List[str]:
    """Lowercase, strip disallowed characters and drop short/stop words."""
    keywords: List[str] = []
    for word in query.lower().split():
        cleaned = _DISALLOWED_RE.sub("", word)
        if len(cleaned) > 2 and cleaned not in STOP_WORDS:
            keywords.append(cleaned)
    return keywords


@dataclass(slots=True, frozen=True)
class KeywordMatcher:
    word: str
    pattern: Pattern[str]

    def count(self, text: str) -> int:
        return sum(1 for _ in self.pattern.finditer(text))


def build_matchers(keywords: Sequence[str]) -> List[KeywordMatcher]:
    """Compile one matcher per keyword.

    Plain words match on ``\\b`` boundaries. Keywords holding punctuation
    (``c++``, ``node.js``) use alphanumeric lookarounds instead, because
    ``\\b`` next to ``+`` or ``.`` would never match at the token edge.
    """
    matchers: List[KeywordMatcher] = []
    for word in keywords:
        escaped = re.escape(word)
        if _WORD_ONLY_RE.match(word):
            pattern = rf"\b{escaped}\b"
        else:
            pattern = rf"(?<![A-Za-z0-9_]){escaped}(?![A-Za-z0-9_])"
        matchers.append(KeywordMatcher(word=word, pattern=re.compile(pattern)))
    return matchers


def score_chunk(
    matchers: Sequence[KeywordMatcher],
    chunk_lower: str,
    *,
    gate_min_keywords: int = 4,
    gate_min_hits: int = 2,
) -> float:
    """Score a lowercased chunk in ``[0, 1]`` by keyword coverage and repetition.

    With ``gate_min_keywords`` or more keywords, fewer than
    ``gate_min_hits`` distinct hits scores 0.
    """
    if not matchers:
        return 0.0

    hits = 0
    bonus = 0.0
    for matcher in matchers:
        occurrences = matcher.count(chunk_lower)
        if occurrences:
            hits += 1
            bonus += min(math.log(occurrences + 1) * REPEAT_FACTOR, REPEAT_CAP)

    if len(matchers) >= gate_min_keywords and hits < gate_min_hits:
        return 0.0

    coverage = hits / len(matchers)
    repeat_bonus = bonus / len(matchers)
    return min(coverage * COVERAGE_WEIGHT + repeat_bonus * REPEAT_WEIGHT, 1.0)
