"""Duplicate suppression for rapid repeated copy actions."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from prompt_history.core.logging import get_logger
from prompt_history.core.metrics import COPIES_SUPPRESSED
from prompt_history.history.store import HistoryStore
from prompt_history.models.entities import HistoryEntry

logger = get_logger(__name__)


@dataclass(slots=True)
class CopyDebounceState:
    last_copied_text: str = ""
    last_copied_at: float | None = None


@dataclass(slots=True)
class CopyOutcome:
    """Result of one copy action. The clipboard is written either way."""

    prompt: str
    entry: HistoryEntry | None = None

    @property
    def skipped(self) -> bool:
        return self.entry is None


class CopyGate:
    """Front door for the UI copy action.

    Identical text copied again within ``window_sec`` of the last recorded copy
    is not appended. The window is measured from the last copy that actually
    produced an entry, and the state lives only as long as the process.
    """

    def __init__(
        self,
        store: HistoryStore,
        window_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.window_sec = window_sec
        self.state = CopyDebounceState()
        self._clock = clock

    def is_duplicate(self, prompt: str, now: float) -> bool:
        last_at = self.state.last_copied_at
        if last_at is None or prompt != self.state.last_copied_text:
            return False
        return now - last_at < self.window_sec

    def copy(self, prompt: str) -> CopyOutcome:
        cleaned = prompt.strip()
        if not cleaned:
            return CopyOutcome(prompt=cleaned)
        with self.store.lock:
            now = self._clock()
            if self.is_duplicate(cleaned, now):
                COPIES_SUPPRESSED.inc()
                logger.debug("Suppressed duplicate copy within %.2fs window", self.window_sec)
                return CopyOutcome(prompt=cleaned)
            entry = self.store.append(cleaned)
            self.state = CopyDebounceState(last_copied_text=cleaned, last_copied_at=now)
            return CopyOutcome(prompt=cleaned, entry=entry)


__all__ = ["CopyGate", "CopyOutcome", "CopyDebounceState"]
