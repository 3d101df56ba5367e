"""Per-entry image files under ``images/YYYY/MM/``."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path, PurePosixPath

from prompt_history.core.errors import ImageNotFoundError, InvalidImageError, StorageIOError
from prompt_history.core.logging import get_logger
from prompt_history.storage.atomic import atomic_write, remove_file
from prompt_history.utils.paths import IMAGES_DIR_NAME
from prompt_history.utils.time import STAMP_FORMAT

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def image_extension(filename: str) -> str:
    """Lower-cased extension of ``filename`` if it is an accepted image type."""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    if suffix not in ALLOWED_EXTENSIONS:
        raise InvalidImageError("unsupported file extension")
    return suffix


def content_type_for(rel_path: str) -> str:
    return _CONTENT_TYPES.get(PurePosixPath(rel_path).suffix.lower(), "application/octet-stream")


class ImageStore:
    """Stores image bytes and hands back base-relative POSIX paths."""

    def __init__(self, base_dir: Path, max_bytes: int) -> None:
        self.base_dir = base_dir
        self.root = base_dir / IMAGES_DIR_NAME
        self.max_bytes = max_bytes

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def store(self, content: bytes, extension: str, moment: datetime) -> str:
        if not content:
            raise InvalidImageError("file is required")
        if len(content) > self.max_bytes:
            raise InvalidImageError(f"file size exceeds {self.max_bytes // (1024 * 1024)}MB")
        month_dir = self.root / moment.strftime("%Y") / moment.strftime("%m")
        try:
            month_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("failed to create image directory") from exc
        target = self._free_name(month_dir, moment, extension)
        atomic_write(target, content)
        rel_path = target.relative_to(self.base_dir).as_posix()
        logger.debug("Stored image %s (%s bytes)", rel_path, len(content))
        return rel_path

    def delete(self, rel_path: str) -> None:
        remove_file(self.resolve(rel_path))

    def take(self, rel_path: str) -> bytes | None:
        """Delete the file behind ``rel_path`` and return its bytes, or ``None`` if it is already gone."""
        target = self.resolve(rel_path)
        try:
            data = target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageIOError("failed to read image") from exc
        remove_file(target)
        return data

    def put_back(self, rel_path: str, data: bytes) -> None:
        target = self.resolve(rel_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("failed to create image directory") from exc
        atomic_write(target, data)

    def replace(self, old_rel_path: str | None, content: bytes, extension: str, moment: datetime) -> str:
        """Store ``content`` and drop ``old_rel_path``; the new file exists before the old one goes."""
        new_rel_path = self.store(content, extension, moment)
        if old_rel_path and old_rel_path != new_rel_path:
            self.delete(old_rel_path)
        return new_rel_path

    def read(self, rel_path: str) -> tuple[bytes, str]:
        target = self.resolve(rel_path)
        try:
            data = target.read_bytes()
        except FileNotFoundError as exc:
            raise ImageNotFoundError("image file is missing") from exc
        except OSError as exc:
            raise StorageIOError("failed to read image") from exc
        return data, content_type_for(rel_path)

    def resolve(self, rel_path: str) -> Path:
        """Map a stored relative path to an absolute one, refusing anything outside ``images/``."""
        cleaned = rel_path.strip()
        if not cleaned:
            raise InvalidImageError("image path is empty")
        candidate = PurePosixPath(cleaned.replace("\\", "/"))
        if not candidate.parts:
            raise InvalidImageError("invalid image path")
        if candidate.is_absolute() or ":" in candidate.parts[0]:
            raise InvalidImageError("absolute image path is not allowed")
        if any(part in (".", "..") for part in cleaned.replace("\\", "/").split("/")):
            raise InvalidImageError("invalid image path")
        if len(candidate.parts) < 2 or candidate.parts[0] != IMAGES_DIR_NAME:
            raise InvalidImageError("image path is out of scope")
        return self.base_dir.joinpath(*candidate.parts)

    @staticmethod
    def _free_name(month_dir: Path, moment: datetime, extension: str) -> Path:
        base = moment.strftime(STAMP_FORMAT)
        seq = 1
        while True:
            target = month_dir / f"{base}_{seq:02d}{extension}"
            if not target.exists():
                return target
            seq += 1


__all__ = ["ImageStore", "ALLOWED_EXTENSIONS", "image_extension", "content_type_for"]
