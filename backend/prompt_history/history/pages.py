"""Live and archive pages as one named-store abstraction."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

from prompt_history.core.errors import CorruptStoreError, EntryNotFoundError
from prompt_history.models.entities import HistoryEntry, PageKind
from prompt_history.storage.atomic import JsonDocument
from prompt_history.utils.paths import (
    LIVE_HTML_NAME,
    LIVE_JSON_NAME,
    LIVE_PAGE_KEY,
    archive_html_name,
    archive_json_name,
)


@dataclass(slots=True)
class HistoryPage:
    """Entries backed by one JSON file and rendered into one HTML file.

    The live page and every dated archive share this type; only ``key`` and the
    derived file names differ. Mutators return new pages so the store can
    persist a candidate state before adopting it.
    """

    key: str
    base_dir: Path
    entries: list[HistoryEntry] = field(default_factory=list)

    @classmethod
    def live(cls, base_dir: Path, entries: Iterable[HistoryEntry] = ()) -> "HistoryPage":
        return cls(key=LIVE_PAGE_KEY, base_dir=base_dir, entries=list(entries))

    @classmethod
    def archive(cls, base_dir: Path, date_key: str, entries: Iterable[HistoryEntry] = ()) -> "HistoryPage":
        return cls(key=date_key, base_dir=base_dir, entries=list(entries))

    @property
    def kind(self) -> PageKind:
        return PageKind.LIVE if self.key == LIVE_PAGE_KEY else PageKind.ARCHIVE

    @property
    def json_path(self) -> Path:
        if self.kind is PageKind.LIVE:
            return self.base_dir / LIVE_JSON_NAME
        return self.base_dir / archive_json_name(self.key)

    @property
    def html_path(self) -> Path:
        if self.kind is PageKind.LIVE:
            return self.base_dir / LIVE_HTML_NAME
        return self.base_dir / archive_html_name(self.key)

    @property
    def title(self) -> str:
        if self.kind is PageKind.LIVE:
            return "Prompt History"
        return f"Prompt History Archive {self.key}"

    def ids(self) -> set[str]:
        return {entry.id for entry in self.entries}

    def index_of(self, entry_id: str) -> int | None:
        for index, entry in enumerate(self.entries):
            if entry.id == entry_id:
                return index
        return None

    def get(self, entry_id: str) -> HistoryEntry:
        index = self.index_of(entry_id)
        if index is None:
            raise EntryNotFoundError(entry_id)
        return self.entries[index]

    def with_entries(self, entries: Iterable[HistoryEntry]) -> "HistoryPage":
        return replace(self, entries=list(entries))

    def with_entry(self, updated: HistoryEntry) -> "HistoryPage":
        index = self.index_of(updated.id)
        if index is None:
            raise EntryNotFoundError(updated.id)
        entries = list(self.entries)
        entries[index] = updated
        return self.with_entries(entries)

    def without(self, entry_id: str) -> "HistoryPage":
        if self.index_of(entry_id) is None:
            raise EntryNotFoundError(entry_id)
        return self.with_entries(entry for entry in self.entries if entry.id != entry_id)

    def read(self) -> "HistoryPage":
        """Return this page populated from its JSON file (empty if the file is absent)."""
        document = JsonDocument(self.json_path)
        if not document.exists():
            return self.with_entries(())
        raw = document.read()
        if not isinstance(raw, list):
            raise CorruptStoreError(self.json_path.name, "top-level value is not an array")
        return self.with_entries(
            entry for entry in (HistoryEntry.from_record(item) for item in raw) if entry is not None
        )

    def persist(self) -> None:
        JsonDocument(self.json_path).write([entry.to_record() for entry in self.entries])


__all__ = ["HistoryPage", "PageKind"]
