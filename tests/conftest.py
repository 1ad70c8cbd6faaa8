"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from adaptive_memory.config import MEMORY_DIR_ENV, PROJECT_DIR_ENV, STATE_DIR_ENV, AppConfig


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep path-resolution environment variables from leaking into tests."""
    for name in (MEMORY_DIR_ENV, PROJECT_DIR_ENV, STATE_DIR_ENV, "ADAPTIVE_MEMORY_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def memory_dir(tmp_path: Path) -> Path:
    memory = tmp_path / "memory"
    (memory / "projects").mkdir(parents=True)
    (memory / "projects" / "photonest.md").write_text(
        "# Photonest\nPhotonest is my photo app on Firebase. The launch plan is ready.\n\n"
        "## Pricing\nThree tiers, billed monthly.",
        encoding="utf-8",
    )
    (memory / "people.md").write_text("# People\nAlice runs design reviews.", encoding="utf-8")
    return memory


@pytest.fixture()
def app_config(tmp_path: Path, memory_dir: Path) -> AppConfig:
    return AppConfig(
        memory_dir=memory_dir,
        state_dir=tmp_path / "state",
        core_memory_path=memory_dir / "MEMORY.md",
        daily_bloat_bytes=4000,
        core_bloat_bytes=800,
    )
