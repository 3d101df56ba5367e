"""Test fixtures for Prompt History."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FixedClock:
    """Wall clock that only moves when a test moves it."""

    def __init__(self, start: datetime) -> None:
        self.moment = start

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **delta: float) -> None:
        self.moment += timedelta(**delta)


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("PHIST_BASE_DIR", str(tmp_path / "phist"))
    monkeypatch.delenv("PHIST_CONFIG", raising=False)
    monkeypatch.delenv("PHIST_HOST", raising=False)

    from prompt_history.api import dependencies as deps
    from prompt_history.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._STORE = None
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._STORE = None


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 2, 3, 4, 5))


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    return tmp_path / "history"


@pytest.fixture
def store(base_dir: Path, clock: FixedClock):
    from prompt_history.history import HistoryStore

    return HistoryStore(base_dir, 3, clock=clock).load()


@pytest.fixture(scope="session")
def png_bytes() -> bytes:
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
