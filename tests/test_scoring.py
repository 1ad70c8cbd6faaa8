"""Tests for keyword extraction and chunk scoring."""

from __future__ import annotations

import pytest

from adaptive_memory.index.scoring import build_matchers, extract_keywords, score_chunk


class TestExtractKeywords:
    """Test extract_keywords function."""

    def test_drops_stop_and_short_words(self) -> None:
        """Stop words and words of two characters or fewer are removed."""
        assert extract_keywords("What are the plans for my Photonest app?") == [
            "plans",
            "photonest",
            "app",
        ]

    def test_keeps_symbols(self) -> None:
        """Technical tokens keep their punctuation."""
        assert extract_keywords("C++ and Node.js (C#.net)") == ["c++", "node.js", "c#.net"]

    def test_empty(self) -> None:
        """Queries made only of stop words yield nothing."""
        assert extract_keywords("the and for") == []


class TestScoreChunk:
    """Test score_chunk function."""

    def test_no_matchers(self) -> None:
        """No keywords scores zero."""
        assert score_chunk([], "anything") == 0.0

    def test_single_hit(self) -> None:
        """One keyword hit once scores coverage plus a small bonus."""
        score = score_chunk(build_matchers(["firebase"]), "we use firebase here")
        assert score == pytest.approx(0.85 + 0.3 * min(0.2 * 0.6931471805599453, 0.5))

    def test_repetition_never_lowers(self) -> None:
        """Adding occurrences never decreases the score."""
        matchers = build_matchers(["firebase", "deploy"])
        previous = 0.0
        for count in range(1, 30):
            score = score_chunk(matchers, " ".join(["firebase"] * count) + " deploy")
            assert score >= previous
            assert 0.0 <= score <= 1.0
            previous = score

    def test_score_capped(self) -> None:
        """Score never exceeds 1."""
        matchers = build_matchers(["firebase"])
        assert score_chunk(matchers, "firebase " * 100) == 1.0

    def test_word_boundaries(self) -> None:
        """Plain words do not match inside longer words."""
        assert score_chunk(build_matchers(["app"]), "the application") == 0.0

    def test_coverage_gate(self) -> None:
        """With four keywords, one hit scores 0 and two hits score above 0."""
        matchers = build_matchers(["photonest", "firebase", "pricing", "launch"])
        assert score_chunk(matchers, "photonest notes") == 0.0
        assert score_chunk(matchers, "photonest uses firebase") > 0.0

    def test_gate_configurable(self) -> None:
        """Gate thresholds come from the caller."""
        matchers = build_matchers(["one", "two", "three", "four"])
        assert score_chunk(matchers, "one", gate_min_keywords=5) > 0.0

    @pytest.mark.parametrize(
        "keyword,text,expected",
        [
            ("c++", "we write c++ daily", True),
            ("c++", "abc++ is not it", False),
            ("node.js", "runs on node.js.", True),
            ("node.js", "nodexjs", False),
        ],
    )
    def test_punctuated_keywords(self, keyword: str, text: str, expected: bool) -> None:
        """Keywords with punctuation match literally on alphanumeric boundaries."""
        assert (score_chunk(build_matchers([keyword]), text) > 0) is expected
