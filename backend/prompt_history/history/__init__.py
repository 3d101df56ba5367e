"""Prompt history persistence components."""

from .archive import ArchiveCut, ArchiveManager
from .debounce import CopyGate, CopyOutcome
from .pages import HistoryPage, PageKind
from .store import HistoryStore

__all__ = [
    "ArchiveCut",
    "ArchiveManager",
    "CopyGate",
    "CopyOutcome",
    "HistoryPage",
    "PageKind",
    "HistoryStore",
]
