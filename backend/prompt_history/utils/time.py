"""Time helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
STAMP_FORMAT = "%Y%m%d_%H%M%S"
DATE_KEY_FORMAT = "%Y%m%d"


def local_now() -> datetime:
    """Return the current naive local time; ids and archive keys use local dates."""
    return datetime.now()


def format_ts(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def date_key(moment: datetime) -> str:
    """Archive key (``YYYYMMDD``) for the calendar day of ``moment``."""
    return moment.strftime(DATE_KEY_FORMAT)
