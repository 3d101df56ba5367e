"""Path naming helpers for history artifacts."""

from __future__ import annotations

import re
from pathlib import Path

LIVE_PAGE_KEY = "live"
LIVE_JSON_NAME = "history.json"
LIVE_HTML_NAME = "History.html"
IMAGES_DIR_NAME = "images"

_ARCHIVE_KEY_RE = re.compile(r"^\d{8}$")
_ARCHIVE_JSON_RE = re.compile(r"^History_(\d{8})\.json$")


def is_archive_key(value: str) -> bool:
    return bool(_ARCHIVE_KEY_RE.match(value))


def archive_json_name(date_key: str) -> str:
    return f"History_{date_key}.json"


def archive_html_name(date_key: str) -> str:
    return f"History_{date_key}.html"


def discover_archive_keys(base_dir: Path) -> list[str]:
    """Return archive date keys found on disk, newest first."""
    if not base_dir.exists():
        return []
    keys = []
    for child in base_dir.iterdir():
        match = _ARCHIVE_JSON_RE.match(child.name)
        if match and child.is_file():
            keys.append(match.group(1))
    return sorted(keys, reverse=True)
