"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import secrets
from datetime import date
from pathlib import Path
from typing import Iterator

LOGGER = logging.getLogger(__name__)

ARCHIVE_DIR_NAME = "archive"
DAILY_FILE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")


def is_daily_file(name: str) -> bool:
    """True for dated output documents (``YYYY-MM-DD.md``)."""
    return bool(DAILY_FILE_RE.match(name))


def daily_path(memory_dir: Path, day: date) -> Path:
    return Path(memory_dir) / f"{day.isoformat()}.md"


def iter_memory_files(root: Path) -> Iterator[Path]:
    """Yield markdown documents under ``root``, descending into directories.

    Hidden directories, the archive directory and dated output documents are
    skipped so the system never indexes its own output. Unreadable
    directories are treated as empty.
    """
    try:
        entries = sorted(os.scandir(root), key=lambda entry: entry.name)
    except FileNotFoundError:
        return
    except OSError as exc:
        LOGGER.debug("Cannot read %s: %s", root, exc)
        return

    for entry in entries:
        try:
            if entry.is_dir():
                if entry.name.startswith(".") or entry.name == ARCHIVE_DIR_NAME:
                    continue
                yield from iter_memory_files(Path(entry.path))
            elif entry.is_file() and entry.name.endswith(".md") and not is_daily_file(entry.name):
                yield Path(entry.path)
        except OSError as exc:
            LOGGER.debug("Skipping %s: %s", entry.path, exc)


def read_text_if_exists(path: Path) -> str:
    """Read a text file, returning an empty string when it does not exist."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def atomic_write_text(path: Path, text: str) -> None:
    """Write via a temp file in the same directory followed by a rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{secrets.token_hex(6)}")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def compute_sha256(value: str) -> str:
    """Compute the SHA256 hex digest of a string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
