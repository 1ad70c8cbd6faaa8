"""Lifecycle state machine: warmup, compaction, digest and consent-gated optimization."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, TypeVar

from adaptive_memory.index.indexer import Indexer
from adaptive_memory.lifecycle.compaction import MemoryCompactor
from adaptive_memory.lifecycle.consent import ConsentDecision, classify_reply
from adaptive_memory.lifecycle.digest import SessionDigest
from adaptive_memory.lifecycle.state import LifecycleState, MaintenanceStore, SessionMarkers

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass(slots=True)
class LifecycleReport:
    """What each action of one lifecycle check did; failed actions are listed by name."""

    results: Dict[str, Any] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    state: LifecycleState = LifecycleState.IDLE


class LifecycleManager:
    def __init__(
        self,
        indexer: Indexer,
        compactor: MemoryCompactor,
        digest: SessionDigest,
        store: MaintenanceStore,
        markers: SessionMarkers,
        *,
        snooze_hours: int = 24,
    ) -> None:
        self.indexer = indexer
        self.compactor = compactor
        self.digest = digest
        self.store = store
        self.markers = markers
        self.snooze = timedelta(hours=snooze_hours)

    def _run_action(
        self, report: LifecycleReport, name: str, action: Callable[[], T]
    ) -> T | None:
        try:
            result = action()
        except Exception:
            LOGGER.exception("Lifecycle action %s failed", name)
            report.failed.append(name)
            return None
        report.results[name] = result
        return result

    def on_startup(self, *, now: datetime | None = None) -> LifecycleReport:
        now = now or datetime.now(timezone.utc)
        report = LifecycleReport()
        self._refresh(report, now)
        return report

    def on_session_start(self, session_id: str, *, now: datetime | None = None) -> LifecycleReport:
        """Handle ``new``/``reset``: compact today's document and start a new session epoch."""
        now = now or datetime.now(timezone.utc)
        report = LifecycleReport()
        compacted = self._run_action(report, "compact", lambda: self.compactor.compact_daily(now=now))
        if compacted is not None and compacted.changed:
            LOGGER.info("Compacted daily file: %d sections removed", compacted.removed_sections)
        self._refresh(report, now)
        self._run_action(report, "clear_session", lambda: self.markers.clear(session_id))
        return report

    def _refresh(self, report: LifecycleReport, now: datetime) -> None:
        digest = self._run_action(report, "digest", lambda: self.digest.refresh(now=now))
        if digest is not None:
            LOGGER.info("Session digest refresh: changed=%s reason=%s", digest.changed, digest.reason)
        self._run_action(report, "warm", self.indexer.warm)
        self._run_action(report, "maintenance", lambda: self.check_maintenance(now=now))
        report.state = self.store.load().lifecycle_state(_ms(now))

    def check_maintenance(self, *, now: datetime | None = None) -> bool:
        """Post a maintenance notice when a document is bloated and prompting is allowed."""
        now = now or datetime.now(timezone.utc)
        state = self.store.load()
        if not state.can_prompt(_ms(now)):
            return False
        signals = self.compactor.signals(now=now)
        if not signals.any_bloated:
            return False
        if not self.compactor.append_notice(signals, now=now):
            return False
        state.pending_consent = True
        state.last_prompt_at = _ms(now)
        self.store.save(state)
        LOGGER.info(
            "Maintenance prompt added (daily=%d bytes, core=%d bytes)",
            signals.daily.size,
            signals.core.size,
        )
        return True

    def on_user_message(self, message: str | None, *, now: datetime | None = None) -> ConsentDecision:
        """While a prompt is pending, act on an explicit consent or decline.

        Anything else leaves the state untouched.
        """
        now = now or datetime.now(timezone.utc)
        state = self.store.load()
        if not state.pending_consent:
            return ConsentDecision.AMBIGUOUS

        decision = classify_reply(message)
        if decision is ConsentDecision.CONSENT:
            try:
                result = self.compactor.optimize(now=now)
            except Exception:
                LOGGER.exception("Memory optimization failed")
                return ConsentDecision.AMBIGUOUS
            LOGGER.info(
                "User-approved optimization: %s",
                [action.to_dict() for action in result.actions] or result.reason,
            )
            state.pending_consent = False
            state.optimized_at = _ms(now)
            state.snooze_until = 0
            self._clear_notice(now)
            self.store.save(state)
        elif decision is ConsentDecision.DECLINE:
            state.pending_consent = False
            state.declined_at = _ms(now)
            state.snooze_until = _ms(now + self.snooze)
            self._clear_notice(now)
            self.store.save(state)
            LOGGER.info("Optimization declined; snoozed for %s", self.snooze)
        return decision

    def _clear_notice(self, now: datetime) -> None:
        try:
            self.compactor.clear_notice(now=now)
        except OSError as exc:
            LOGGER.warning("Could not clear maintenance notice: %s", exc)
