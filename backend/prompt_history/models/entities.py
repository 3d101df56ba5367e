"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class PageKind(str, Enum):
    LIVE = "live"
    ARCHIVE = "archive"


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """One copied prompt. ``ts`` never changes after creation."""

    id: str
    ts: str
    prompt: str
    image: str | None = None

    @property
    def lines(self) -> list[str]:
        return self.prompt.splitlines()

    @property
    def has_image(self) -> bool:
        return self.image is not None

    def to_record(self) -> dict[str, Any]:
        """On-disk shape: ``images`` is a list holding at most one path."""
        return {
            "id": self.id,
            "ts": self.ts,
            "prompt": self.prompt,
            "images": [self.image] if self.image else [],
        }

    @classmethod
    def from_record(cls, raw: Any) -> "HistoryEntry | None":
        """Build an entry from a decoded JSON item, or ``None`` if it is unusable."""
        if not isinstance(raw, Mapping):
            return None
        entry_id = _clean_str(raw.get("id"))
        ts = _clean_str(raw.get("ts"))
        prompt = _clean_str(raw.get("prompt"))
        if not entry_id or not ts or not prompt:
            return None
        raw_images = raw.get("images")
        images: list[str] = []
        if isinstance(raw_images, list):
            images = [path for path in (_clean_str(value) for value in raw_images) if path]
        # Older files occasionally carried several images; the newest one wins.
        return cls(id=entry_id, ts=ts, prompt=prompt, image=images[-1] if images else None)


def _clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


__all__ = ["HistoryEntry", "PageKind"]
