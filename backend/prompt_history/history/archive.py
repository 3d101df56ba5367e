"""Capacity-driven archiving of the oldest live entries."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from prompt_history.history.pages import HistoryPage
from prompt_history.models.entities import HistoryEntry


@dataclass(slots=True)
class ArchiveCut:
    """Outcome of one overflow check: the trimmed live page and the archive it fed."""

    live: HistoryPage
    archive: HistoryPage
    moved: list[HistoryEntry]
    created: bool


class ArchiveManager:
    """Moves overflow from the front of the live page into the day's archive.

    A capacity of zero or less is a valid setting meaning "keep no live
    window": every entry is archived as soon as it is appended.
    """

    def __init__(self, base_dir: Path, capacity: int) -> None:
        self.base_dir = base_dir
        self.capacity = capacity

    @property
    def effective_capacity(self) -> int:
        return max(self.capacity, 0)

    def overflow(self, live: HistoryPage) -> int:
        return max(len(live.entries) - self.effective_capacity, 0)

    def cut(self, live: HistoryPage, existing: HistoryPage | None, date_key: str) -> ArchiveCut | None:
        """Plan the move for ``date_key``; returns ``None`` when the live page fits."""
        excess = self.overflow(live)
        if excess == 0:
            return None
        moved = live.entries[:excess]
        kept = live.entries[excess:]
        if existing is None:
            archive = HistoryPage.archive(self.base_dir, date_key, moved)
            created = True
        else:
            known = existing.ids()
            archive = existing.with_entries(
                [*existing.entries, *(entry for entry in moved if entry.id not in known)]
            )
            created = False
        return ArchiveCut(live=live.with_entries(kept), archive=archive, moved=moved, created=created)


__all__ = ["ArchiveManager", "ArchiveCut"]
