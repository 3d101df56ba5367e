"""ID helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from prompt_history.utils.time import STAMP_FORMAT


def new_entry_id(moment: datetime, existing_ids: Iterable[str]) -> str:
    """Return ``YYYYMMDD_HHMMSS_NNNN`` with the next free sequence for that second."""
    base = moment.strftime(STAMP_FORMAT)
    prefix = f"{base}_"
    seq = 1
    for entry_id in existing_ids:
        if not entry_id.startswith(prefix):
            continue
        parts = entry_id.split("_")
        if len(parts) != 3 or not parts[2].isdigit():
            continue
        seq = max(seq, int(parts[2]) + 1)
    return f"{base}_{seq:04d}"
