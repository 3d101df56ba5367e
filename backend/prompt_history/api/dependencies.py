"""Shared FastAPI dependencies."""

from __future__ import annotations

import threading
from functools import lru_cache

from prompt_history.core.config import Settings, get_settings
from prompt_history.history.store import HistoryStore

_STORE: HistoryStore | None = None
_STORE_LOCK = threading.Lock()


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_history_store() -> HistoryStore:
    global _STORE
    if _STORE is None:
        with _STORE_LOCK:
            if _STORE is None:
                _STORE = HistoryStore.from_settings(get_app_settings()).load()
    return _STORE


__all__ = [
    "get_app_settings",
    "get_history_store",
]
