"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from adaptive_memory.cli import _setup_logging, app
from adaptive_memory.config import STATE_DIR_ENV, AppConfig


runner = CliRunner()


@pytest.fixture()
def cli_env(tmp_path: Path, memory_dir: Path, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Options pointing the CLI at a temporary corpus and state directory."""
    monkeypatch.setenv(STATE_DIR_ENV, str(tmp_path / "state"))
    return ["--memory-dir", str(memory_dir)]


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("adaptive_memory.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("adaptive_memory.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO

    def test_setup_logging_from_config(self) -> None:
        """Configured level and the logging switch are honored."""
        with patch("adaptive_memory.cli.logging.basicConfig") as mock_config:
            _setup_logging(False, AppConfig(log_level="warn"))
            assert mock_config.call_args[1]["level"] == logging.WARNING

            _setup_logging(False, AppConfig(enable_logging=False))
            assert mock_config.call_args[1]["level"] > logging.CRITICAL


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_finds_match(self, cli_env: list[str]) -> None:
        """Prints a table of matches."""
        result = runner.invoke(app, ["search", "photonest firebase launch", *cli_env])

        assert result.exit_code == 0
        assert "photonest.md" in result.stdout

    def test_search_no_match(self, cli_env: list[str]) -> None:
        """Shows a notice when nothing matches."""
        result = runner.invoke(app, ["search", "quarterly gardening", *cli_env])

        assert result.exit_code == 0
        assert "No matches found." in result.stdout


class TestWarmCommand:
    """Tests for the warm command."""

    def test_warm(self, cli_env: list[str]) -> None:
        """Reports warmup statistics."""
        result = runner.invoke(app, ["warm", *cli_env])

        assert result.exit_code == 0
        assert "Files: 2, refreshed: 2, reused: 0, cache written: True" in result.stdout


class TestFirstMessageCommand:
    """Tests for the first-message command."""

    def test_first_message(self, cli_env: list[str], memory_dir: Path) -> None:
        """Prints the hook result as JSON."""
        result = runner.invoke(
            app,
            ["first-message", "s1", "What is the launch plan for my Photonest app?", *cli_env],
        )

        assert result.exit_code == 0
        assert '"status": "injected"' in result.stdout
        assert list(memory_dir.glob("????-??-??.md"))


class TestEventCommand:
    """Tests for the event command."""

    def test_startup_event(self, cli_env: list[str]) -> None:
        """Handles a startup event passed as an argument."""
        result = runner.invoke(app, ["event", json.dumps({"type": "startup"}), *cli_env])

        assert result.exit_code == 0
        assert "Handled startup event" in result.stdout
        assert "State: idle" in result.stdout

    def test_event_from_stdin(self, cli_env: list[str]) -> None:
        """Reads the event from stdin when no argument is given."""
        payload = json.dumps({"type": "command", "action": "new", "sessionKey": "s1"})

        result = runner.invoke(app, ["event", *cli_env], input=payload)

        assert result.exit_code == 0
        assert "Handled new event" in result.stdout

    def test_ignored_event(self, cli_env: list[str]) -> None:
        """Unknown events are ignored."""
        result = runner.invoke(app, ["event", json.dumps({"type": "agent"}), *cli_env])

        assert result.exit_code == 0
        assert "Event ignored." in result.stdout

    def test_invalid_json(self, cli_env: list[str]) -> None:
        """Malformed JSON is a usage error."""
        result = runner.invoke(app, ["event", "{not json", *cli_env])

        assert result.exit_code != 0


class TestDigestAndMaintenance:
    """Tests for the digest and maintenance commands."""

    def test_digest_without_sessions(self, cli_env: list[str]) -> None:
        """A missing sessions directory is reported."""
        result = runner.invoke(app, ["digest", *cli_env])

        assert result.exit_code == 0
        assert "Digest changed: False" in result.stdout
        assert "sessions_dir_unavailable" in result.stdout

    def test_maintenance(self, cli_env: list[str]) -> None:
        """Shows the lifecycle state."""
        result = runner.invoke(app, ["maintenance", *cli_env])

        assert result.exit_code == 0
        assert "State: idle" in result.stdout


class TestWebCommand:
    """Tests for the web command."""

    def test_web_starts_uvicorn(self) -> None:
        """Starts uvicorn with the configured host and port."""
        pytest.importorskip("uvicorn")
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["web", "--host", "0.0.0.0", "--port", "9000"])

        assert result.exit_code == 0
        assert mock_run.call_args[1]["host"] == "0.0.0.0"
        assert mock_run.call_args[1]["port"] == 9000
