"""Error taxonomy shared by the store, the server and the CLI."""

from __future__ import annotations


class HistoryError(Exception):
    """Base class for every history subsystem failure."""


class EntryNotFoundError(HistoryError):
    """No entry with the requested id exists in the targeted page(s)."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"history id not found: {entry_id}")
        self.entry_id = entry_id


class PageNotFoundError(HistoryError):
    """The requested page key is neither the live page nor a known archive."""

    def __init__(self, page_key: str) -> None:
        super().__init__(f"history page not found: {page_key}")
        self.page_key = page_key


class CorruptStoreError(HistoryError):
    """A JSON artifact exists but cannot be parsed into entries.

    Raised at load time and never recovered automatically; the operator has to
    repair or move the file.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"corrupt history file {path}: {reason}")
        self.path = path
        self.reason = reason


class ImageNotFoundError(HistoryError):
    """The entry has no image, or its image file is gone from disk."""


class StorageIOError(HistoryError):
    """Writing, renaming or deleting an artifact failed after a retry."""


class InvalidPromptError(HistoryError, ValueError):
    """Prompt text is empty after trimming."""


class InvalidImageError(HistoryError, ValueError):
    """Uploaded image or requested image path is not acceptable."""


__all__ = [
    "HistoryError",
    "EntryNotFoundError",
    "PageNotFoundError",
    "CorruptStoreError",
    "ImageNotFoundError",
    "StorageIOError",
    "InvalidPromptError",
    "InvalidImageError",
]
