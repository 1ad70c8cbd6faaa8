"""Persisted maintenance state and per-session processed markers."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from adaptive_memory.utils.files import atomic_write_text, compute_sha256

LOGGER = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class LifecycleState(str, Enum):
    IDLE = "idle"
    PROMPT_PENDING = "prompt_pending"
    SNOOZED = "snoozed"


@dataclass(slots=True)
class MaintenanceState:
    """Consent bookkeeping. Timestamps are epoch milliseconds, 0 when unset."""

    pending_consent: bool = False
    last_prompt_at: int = 0
    optimized_at: int = 0
    snooze_until: int = 0
    declined_at: int = 0

    def lifecycle_state(self, at_ms: int | None = None) -> LifecycleState:
        at_ms = now_ms() if at_ms is None else at_ms
        if self.pending_consent:
            return LifecycleState.PROMPT_PENDING
        if at_ms < self.snooze_until:
            return LifecycleState.SNOOZED
        return LifecycleState.IDLE

    def can_prompt(self, at_ms: int | None = None) -> bool:
        return self.lifecycle_state(at_ms) is LifecycleState.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pendingConsent": self.pending_consent,
            "lastPromptAt": self.last_prompt_at,
            "optimizedAt": self.optimized_at,
            "snoozeUntil": self.snooze_until,
            "declinedAt": self.declined_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaintenanceState":
        return cls(
            pending_consent=bool(data.get("pendingConsent", False)),
            last_prompt_at=int(data.get("lastPromptAt") or 0),
            optimized_at=int(data.get("optimizedAt") or 0),
            snooze_until=int(data.get("snoozeUntil") or 0),
            declined_at=int(data.get("declinedAt") or 0),
        )


class MaintenanceStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> MaintenanceState:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return MaintenanceState.from_dict(data)
        except FileNotFoundError:
            return MaintenanceState()
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            LOGGER.warning("Maintenance state %s unreadable, resetting: %s", self.path, exc)
            return MaintenanceState()

    def save(self, state: MaintenanceState) -> None:
        atomic_write_text(self.path, json.dumps(state.to_dict()))


class SessionMarkers:
    """One small file per processed session, named by a hash of its id."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"{compute_sha256(str(session_id or ''))}.json"

    def has(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    def mark(self, session_id: str) -> None:
        payload = {"sessionKey": str(session_id), "processedAt": now_ms()}
        atomic_write_text(self.path_for(session_id), json.dumps(payload))

    def clear(self, session_id: str) -> bool:
        try:
            self.path_for(session_id).unlink()
        except FileNotFoundError:
            return False
        return True
