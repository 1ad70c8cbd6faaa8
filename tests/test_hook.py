"""Tests for host event handling and first-message injection."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from adaptive_memory.config import FALLBACK_LOAD_ALL, AppConfig
from adaptive_memory.hook import AdaptiveMemory, EventKind, HookEvent
from adaptive_memory.inject.sections import DIGEST_START_MARKER, SESSION_MARKER_PREFIX
from adaptive_memory.lifecycle.consent import ConsentDecision
from adaptive_memory.lifecycle.transcripts import StaticTranscript

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
QUESTION = "What is the launch plan for my Photonest app on Firebase?"


class TestHookEvent:
    """Test HookEvent.from_dict parsing."""

    @pytest.mark.parametrize("event_type", ["startup", "gateway:startup"])
    def test_startup(self, event_type: str) -> None:
        """Both startup spellings are accepted."""
        assert HookEvent.from_dict({"type": event_type}).kind is EventKind.STARTUP

    @pytest.mark.parametrize(
        "data,kind",
        [
            ({"type": "command", "action": "new", "sessionKey": "s1"}, EventKind.NEW),
            ({"type": "command", "action": "RESET", "session_id": "s1"}, EventKind.RESET),
            ({"type": "command", "action": "stop", "sessionKey": "s1"}, EventKind.STOP),
            ({"type": "command", "sessionKey": "s1"}, EventKind.TURN),
            ({"type": "command", "action": "message", "sessionKey": "s1"}, EventKind.TURN),
            ({"type": "command", "action": "startup", "sessionKey": "s1"}, EventKind.TURN),
        ],
    )
    def test_commands(self, data: dict, kind: EventKind) -> None:
        """Command actions map to event kinds; anything unknown is a turn."""
        event = HookEvent.from_dict(data)

        assert event.kind is kind
        assert event.session_id == "s1"

    @pytest.mark.parametrize(
        "data",
        [
            None,
            "startup",
            {},
            {"type": "agent"},
            {"type": "command", "action": "new"},
            {"type": "command", "action": "new", "sessionKey": "  "},
            {"type": "command", "sessionKey": 7},
        ],
    )
    def test_ignored(self, data) -> None:
        """Unknown shapes and commands without a session id are ignored."""
        assert HookEvent.from_dict(data) is None

    def test_message_kept(self) -> None:
        """A string message rides along with the event."""
        event = HookEvent.from_dict({"type": "command", "sessionKey": "s", "message": "hi there"})
        assert event.message == "hi there"


@pytest.fixture()
def memory(app_config: AppConfig) -> AdaptiveMemory:
    return AdaptiveMemory(app_config, transcripts=StaticTranscript())


class TestFirstMessage:
    """Test AdaptiveMemory.handle_first_message."""

    def test_injects_relevant_memory(self, memory: AdaptiveMemory) -> None:
        """A relevant first message injects chunks into today's document."""
        result = memory.handle_first_message("s1", QUESTION, now=NOW)

        daily = memory.config.memory_dir / "2026-10-18.md"
        assert result.status == "injected"
        assert result.success is True
        assert result.injected == 1
        assert result.chunks[0].path.endswith("photonest.md")
        assert result.chunks[0].preview.endswith("...")
        assert len(result.chunks) == result.injected
        assert "Photonest is my photo app" in daily.read_text()

    def test_repeat_has_no_previews(self, memory: AdaptiveMemory) -> None:
        """A repeat call for an injected session reports nothing written."""
        memory.handle_first_message("s1", QUESTION, now=NOW)

        result = memory.handle_first_message("s1", QUESTION, now=NOW)

        assert result.injected == 0
        assert result.chunks == []

    def test_disabled(self, app_config: AppConfig) -> None:
        """A disabled engine does nothing."""
        memory = AdaptiveMemory(replace(app_config, enabled=False))

        result = memory.handle_first_message("s1", QUESTION, now=NOW)

        assert result.status == "disabled"
        assert result.skipped is True

    def test_short_message(self, memory: AdaptiveMemory) -> None:
        """Messages too short for an intent are skipped."""
        assert memory.handle_first_message("s1", "hi", now=NOW).status == "skipped_short"

    def test_technical_message(self, memory: AdaptiveMemory) -> None:
        """Pure technical prompts skip the search."""
        with patch.object(memory.searcher, "search") as search:
            result = memory.handle_first_message(
                "s1", "TypeError stack trace when compiling the module", now=NOW
            )

        assert result.status == "skipped_heuristic"
        search.assert_not_called()

    def test_nothing_relevant(self, memory: AdaptiveMemory) -> None:
        """Unrelated questions inject nothing."""
        result = memory.handle_first_message(
            "s1", "tell me about quarterly gardening schedules", now=NOW
        )

        assert result.status == "no_relevant_memory"
        assert not (memory.config.memory_dir / "2026-10-18.md").exists()

    def test_error_fallback(self, memory: AdaptiveMemory) -> None:
        """Failures become an error result with the configured fallback."""
        with patch.object(memory.searcher, "search", side_effect=RuntimeError("boom")):
            result = memory.handle_first_message("s1", QUESTION, now=NOW)

        assert result.success is False
        assert result.status == "error"
        assert result.fallback == "continue_without_context"
        assert result.error == "boom"

    def test_error_fallback_load_all(self, app_config: AppConfig) -> None:
        """The load-all selector is reported on failure."""
        memory = AdaptiveMemory(replace(app_config, fallback_behavior=FALLBACK_LOAD_ALL))

        with patch.object(memory.searcher, "search", side_effect=RuntimeError("boom")):
            result = memory.handle_first_message("s1", QUESTION, now=NOW)

        assert result.fallback == "loaded_all_memory"


class TestHandleEvent:
    """Test AdaptiveMemory.handle_event."""

    def test_first_turn_processed_once(self, memory: AdaptiveMemory) -> None:
        """Only the first turn of a session triggers retrieval."""
        memory.transcripts.add("s1", QUESTION)
        turn = HookEvent(kind=EventKind.TURN, session_id="s1")

        first = memory.handle_event(turn, now=NOW)
        memory.transcripts.add("s1", "and what about pricing for photonest?")
        second = memory.handle_event(turn, now=NOW)

        assert first.result.status == "injected"
        assert second.result is None
        assert memory.markers.has("s1") is True

    def test_marker_set_even_when_nothing_injected(self, memory: AdaptiveMemory) -> None:
        """A session is marked processed whatever the outcome."""
        event = HookEvent(kind=EventKind.TURN, session_id="s2", message="hi")

        outcome = memory.handle_event(event, now=NOW)

        assert outcome.result.status == "skipped_short"
        assert memory.markers.has("s2") is True

    def test_new_session_epoch(self, memory: AdaptiveMemory) -> None:
        """After /new the session is processed again against a compacted document."""
        memory.transcripts.add("s1", QUESTION)
        turn = HookEvent(kind=EventKind.TURN, session_id="s1")
        memory.handle_event(turn, now=NOW)

        outcome = memory.handle_event(HookEvent(kind=EventKind.NEW, session_id="s1"), now=NOW)
        again = memory.handle_event(turn, now=NOW)

        text = (memory.config.memory_dir / "2026-10-18.md").read_text()
        assert outcome.report.failed == []
        assert again.result.injected == 1
        assert text.count(SESSION_MARKER_PREFIX) == 1
        assert text.count(DIGEST_START_MARKER) == 1

    def test_stop_ignored(self, memory: AdaptiveMemory) -> None:
        """Stop events do nothing."""
        assert memory.handle_event(HookEvent(kind=EventKind.STOP, session_id="s1")) is None
        assert memory.handle_event(None) is None

    def test_startup(self, memory: AdaptiveMemory) -> None:
        """Startup runs the lifecycle checks."""
        outcome = memory.handle_event(HookEvent(kind=EventKind.STARTUP), now=NOW)

        assert outcome.kind is EventKind.STARTUP
        assert outcome.report.failed == []

    def test_consent_reply_on_turn(self, memory: AdaptiveMemory) -> None:
        """A reply to a pending prompt is classified on the next turn."""
        memory.compactor.core_path.write_text("# Core\n" + "narrative line\n" * 100)
        memory.handle_event(HookEvent(kind=EventKind.STARTUP), now=NOW)
        memory.markers.mark("s1")

        outcome = memory.handle_event(
            HookEvent(kind=EventKind.TURN, session_id="s1", message="no, not now"), now=NOW
        )

        assert outcome.decision is ConsentDecision.DECLINE
        assert outcome.result is None

    def test_unwritable_marker(self, memory: AdaptiveMemory) -> None:
        """Failing to record the processed marker does not escape the handler."""
        event = HookEvent(kind=EventKind.TURN, session_id="s1", message=QUESTION)

        with patch.object(memory.markers, "mark", side_effect=PermissionError("read-only")):
            outcome = memory.handle_event(event, now=NOW)

        assert outcome.result.status == "injected"

    def test_unreadable_marker(self, memory: AdaptiveMemory) -> None:
        """Failing to check the processed marker skips retrieval for the turn."""
        event = HookEvent(kind=EventKind.TURN, session_id="s1", message=QUESTION)

        with patch.object(memory.markers, "has", side_effect=PermissionError("denied")):
            outcome = memory.handle_event(event, now=NOW)

        assert outcome.result is None
        assert outcome.decision is ConsentDecision.AMBIGUOUS
