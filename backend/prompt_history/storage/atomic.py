"""Crash-safe file persistence utilities."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

import orjson

from prompt_history.core.errors import CorruptStoreError, StorageIOError
from prompt_history.core.logging import get_logger

logger = get_logger(__name__)

TEMP_SUFFIX = ".tmp"
RETRY_DELAY_SEC = 0.05


def temp_path_for(target: Path) -> Path:
    return target.with_name(target.name + TEMP_SUFFIX)


def atomic_write(target: Path, data: bytes) -> None:
    """Write ``data`` to ``target`` through a sibling temp file and ``os.replace``.

    A crash at any point leaves either the previous file or the new one, never a
    truncated mix. Transient failures (a file briefly locked by a virus scanner
    or an editor) get one retry before surfacing as ``StorageIOError``.
    """
    try:
        _write_and_replace(target, data)
    except OSError as first:
        logger.warning("Write to %s failed, retrying once: %s", target.name, first)
        time.sleep(RETRY_DELAY_SEC)
        try:
            _write_and_replace(target, data)
        except OSError as exc:
            _discard(temp_path_for(target))
            raise StorageIOError(f"failed to write {target.name}") from exc


def write_if_changed(target: Path, data: bytes) -> bool:
    """Atomically write ``data`` unless ``target`` already holds exactly these bytes."""
    try:
        if target.read_bytes() == data:
            return False
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.debug("Could not compare %s before writing: %s", target.name, exc)
    atomic_write(target, data)
    return True


def remove_file(target: Path) -> None:
    """Delete ``target``; absence counts as success. One retry on failure."""
    for attempt in range(2):
        try:
            target.unlink()
            return
        except FileNotFoundError:
            return
        except OSError as exc:
            if attempt == 1:
                raise StorageIOError(f"failed to delete {target.name}") from exc
            logger.warning("Delete of %s failed, retrying once: %s", target.name, exc)
            time.sleep(RETRY_DELAY_SEC)


def remove_stale_temps(directory: Path, recursive: bool = False) -> int:
    """Drop ``*.tmp`` leftovers of interrupted writes; returns how many were removed."""
    removed = 0
    if not directory.exists():
        return removed
    pattern = f"*{TEMP_SUFFIX}"
    candidates = directory.rglob(pattern) if recursive else directory.glob(pattern)
    for child in list(candidates):
        if child.is_file():
            _discard(child)
            removed += 1
    if removed:
        logger.warning("Removed %s stale temp file(s) from %s", removed, directory)
    return removed


class JsonDocument:
    """A JSON file read whole and replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Any:
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            raise StorageIOError(f"failed to read {self.path.name}") from exc
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise CorruptStoreError(self.path.name, str(exc)) from exc

    def write(self, payload: Any) -> None:
        data = orjson.dumps(payload, option=orjson.OPT_INDENT_2)
        atomic_write(self.path, data)


def _write_and_replace(target: Path, data: bytes) -> None:
    tmp_path = temp_path_for(target)
    with tmp_path.open("wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp_path, target)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except OSError:
        logger.debug("Could not remove %s", path)


__all__ = [
    "JsonDocument",
    "atomic_write",
    "write_if_changed",
    "remove_file",
    "remove_stale_temps",
    "temp_path_for",
]
