"""Command line interface for adaptive memory."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from adaptive_memory.config import AppConfig, load_config
from adaptive_memory.hook import AdaptiveMemory, HookEvent
from adaptive_memory.web.app import CONFIG_ENV
from adaptive_memory.web.app import app as web_app


console = Console()
app = typer.Typer(help="Adaptive memory - keyword retrieval and upkeep for markdown notes")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _setup_logging(verbose: bool, config: AppConfig | None = None) -> None:
    if verbose:
        level = logging.DEBUG
    elif config is not None and not config.enable_logging:
        level = logging.CRITICAL + 1
    elif config is not None:
        level = _LOG_LEVELS.get(config.log_level.lower(), logging.INFO)
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load(config_path: Optional[Path], memory_dir: Optional[Path], verbose: bool) -> AppConfig:
    config = load_config(config_path)
    if memory_dir is not None:
        config = replace(config, memory_dir=memory_dir)
    _setup_logging(verbose, config)
    return config


_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="JSON config file")
_MEMORY_DIR_OPTION = typer.Option(None, "--memory-dir", help="Root directory of memory notes")
_VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    max_results: int = typer.Option(5, help="Number of results to display"),
    min_score: float = typer.Option(0.3, help="Minimum relevance score"),
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Run a keyword search over the memory corpus."""
    config = _load(config_path, memory_dir, verbose)
    memory = AdaptiveMemory(config)

    results = memory.searcher.search(query, max_results=max_results, min_score=min_score)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Snippet")

    for result in results:
        snippet = result.snippet.replace("\n", " ")
        table.add_row(f"{result.score:.2f}", result.path.name, snippet[:120])

    console.print(table)


@app.command()
def warm(
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Pre-warm the chunk cache without scoring any query."""
    config = _load(config_path, memory_dir, verbose)
    memory = AdaptiveMemory(config)
    stats = memory.lifecycle.indexer.warm()
    console.print(
        f"Files: {stats.files_seen}, refreshed: {stats.refreshed}, "
        f"reused: {stats.reused}, cache written: {stats.cache_written}"
    )


@app.command("first-message")
def first_message(
    session_id: str = typer.Argument(..., help="Session identifier"),
    message: str = typer.Argument(..., help="First user message"),
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Search memory for a first message and inject relevant chunks."""
    config = _load(config_path, memory_dir, verbose)
    memory = AdaptiveMemory(config)
    result = memory.handle_first_message(session_id, message)
    console.print_json(json.dumps(result.to_dict()))


@app.command()
def event(
    payload: Optional[str] = typer.Argument(None, help="Event JSON (read from stdin when omitted)"),
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Dispatch one host lifecycle event."""
    config = _load(config_path, memory_dir, verbose)
    raw = payload if payload is not None else sys.stdin.read()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid event JSON: {exc}") from exc

    hook_event = HookEvent.from_dict(data)
    if hook_event is None:
        console.print("[yellow]Event ignored.[/yellow]")
        return

    outcome = AdaptiveMemory(config).handle_event(hook_event)
    if outcome is None:
        console.print("[yellow]Event ignored.[/yellow]")
        return
    console.print(f"Handled [bold]{outcome.kind.value}[/bold] event")
    if outcome.report is not None:
        console.print(f"State: {outcome.report.state.value}")
        for name in outcome.report.failed:
            console.print(f"[red]Action failed: {name}[/red]")
    if outcome.decision is not None:
        console.print(f"Consent decision: {outcome.decision.value}")
    if outcome.result is not None:
        console.print_json(json.dumps(outcome.result.to_dict()))


@app.command()
def digest(
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Refresh the cross-session digest from recent transcripts."""
    config = _load(config_path, memory_dir, verbose)
    result = AdaptiveMemory(config).lifecycle.digest.refresh()
    console.print(
        f"Digest changed: {result.changed}, sessions: {result.sessions}"
        + (f" ({result.reason})" if result.reason else "")
    )


@app.command()
def maintenance(
    config_path: Optional[Path] = _CONFIG_OPTION,
    memory_dir: Optional[Path] = _MEMORY_DIR_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Show maintenance state and document size signals."""
    config = _load(config_path, memory_dir, verbose)
    memory = AdaptiveMemory(config)
    state = memory.store.load()
    signals = memory.compactor.signals(now=datetime.now(timezone.utc))

    console.print(f"State: [bold]{state.lifecycle_state().value}[/bold]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Size")
    table.add_column("Limit")
    table.add_column("Bloated")
    table.add_row(str(signals.daily.path), str(signals.daily.size), str(signals.daily_limit), str(signals.daily.bloated))
    table.add_row(str(signals.core.path), str(signals.core.size), str(signals.core_limit), str(signals.core.bloated))
    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    config_path: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Start the HTTP event adapter."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    if config_path is not None:
        os.environ[CONFIG_ENV] = str(config_path)

    console.print(f"Starting event adapter on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
