"""Canonical prompt history: live page, dated archives, images and rendered pages."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

from prompt_history.core.config import Settings
from prompt_history.core.errors import (
    EntryNotFoundError,
    ImageNotFoundError,
    InvalidImageError,
    InvalidPromptError,
    PageNotFoundError,
    StorageIOError,
)
from prompt_history.core.logging import get_logger
from prompt_history.core.metrics import ARCHIVED_ENTRIES, LIVE_ENTRIES, MUTATIONS
from prompt_history.history.archive import ArchiveCut, ArchiveManager
from prompt_history.history.pages import HistoryPage, PageKind
from prompt_history.models.entities import HistoryEntry
from prompt_history.render.page import PageContext, render_bytes
from prompt_history.storage.atomic import remove_file, remove_stale_temps, write_if_changed
from prompt_history.storage.images import ImageStore, image_extension
from prompt_history.utils.ids import new_entry_id
from prompt_history.utils.paths import LIVE_PAGE_KEY, discover_archive_keys, is_archive_key
from prompt_history.utils.time import Clock, date_key, format_ts, local_now

logger = get_logger(__name__)


class HistoryStore:
    """Owns every history artifact under ``base_dir``.

    Each public mutation runs under one re-entrant lock for its whole
    mutate-persist-render cycle. Changes are staged on copies of the affected
    pages, written to disk (archives before the live page, JSON before HTML)
    and only then adopted in memory; a failed write restores what was already
    written and leaves the in-memory view untouched.
    """

    def __init__(
        self,
        base_dir: Path,
        capacity: int,
        *,
        server_port: int = 3000,
        confirm_delete: bool = True,
        max_image_bytes: int = 20 * 1024 * 1024,
        clock: Clock = local_now,
    ) -> None:
        self.base_dir = base_dir.expanduser()
        self.images = ImageStore(self.base_dir, max_image_bytes)
        self.archiver = ArchiveManager(self.base_dir, capacity)
        self.server_port = server_port
        self.confirm_delete = confirm_delete
        self._clock = clock
        self._lock = threading.RLock()
        self._live = HistoryPage.live(self.base_dir)
        self._archives: dict[str, HistoryPage] = {}
        self._revision = 0

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = local_now) -> "HistoryStore":
        return cls(
            settings.base_dir,
            settings.history_max_entries,
            server_port=settings.history_server_port,
            confirm_delete=settings.history_confirm_delete,
            max_image_bytes=settings.max_image_bytes,
            clock=clock,
        )

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def capacity(self) -> int:
        return self.archiver.capacity

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def live_html_path(self) -> Path:
        return self._live.html_path

    # Loading ----------------------------------------------------------

    def load(self) -> "HistoryStore":
        """Read every JSON artifact; a malformed file raises ``CorruptStoreError``."""
        with self._lock:
            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                self.images.ensure_root()
            except OSError as exc:
                raise StorageIOError("failed to create history directories") from exc
            remove_stale_temps(self.base_dir)
            remove_stale_temps(self.images.root, recursive=True)

            live = HistoryPage.live(self.base_dir)
            if live.json_path.exists():
                live = live.read()
            else:
                live.persist()
                logger.info("Initialized empty history at %s", self.base_dir)
            archives = {
                key: HistoryPage.archive(self.base_dir, key).read()
                for key in discover_archive_keys(self.base_dir)
            }

            archived_ids = {entry_id for page in archives.values() for entry_id in page.ids()}
            duplicated = live.ids() & archived_ids
            if duplicated:
                # An interrupted archive cut wrote the archive but not the live page.
                logger.warning("Dropping %s live entries already archived", len(duplicated))
                live = live.with_entries(entry for entry in live.entries if entry.id not in duplicated)
                live.persist()

            self._live = live
            self._archives = archives
            LIVE_ENTRIES.set(len(live.entries))

            if self.archiver.overflow(live):
                logger.warning(
                    "Live history holds %s entries over capacity %s; archiving",
                    len(live.entries),
                    self.capacity,
                )
                cut = self._plan_cut(live)
                self._commit([cut.archive, cut.live] if cut else [live])
                self._count_archived(cut)
            self.render_all()
        return self

    # Queries ----------------------------------------------------------

    def page_keys(self) -> list[str]:
        """Live page first, then archive date keys newest first."""
        with self._lock:
            return [LIVE_PAGE_KEY, *sorted(self._archives, reverse=True)]

    def list_entries(self, page_key: str = LIVE_PAGE_KEY) -> list[HistoryEntry]:
        with self._lock:
            return list(self._page(page_key).entries)

    def get(self, entry_id: str, page_key: str | None = None) -> HistoryEntry:
        entry_id = entry_id.strip()
        with self._lock:
            return self._locate(entry_id, page_key).get(entry_id)

    def locate(self, entry_id: str) -> str:
        """Key of the page currently holding ``entry_id``."""
        entry_id = entry_id.strip()
        with self._lock:
            return self._locate(entry_id, None).key

    def read_image(self, entry_id: str, page_key: str | None = None) -> tuple[bytes, str]:
        entry_id = entry_id.strip()
        with self._lock:
            entry = self._locate(entry_id, page_key).get(entry_id)
            if entry.image is None:
                raise ImageNotFoundError(f"history id has no image: {entry_id}")
            return self.images.read(entry.image)

    # Mutations --------------------------------------------------------

    def append(
        self,
        prompt: str,
        image: bytes | None = None,
        image_name: str = "image.png",
    ) -> HistoryEntry:
        """Record a new entry and archive any overflow before returning."""
        cleaned = _clean_prompt(prompt)
        extension = image_extension(image_name) if image is not None else None
        with self._lock:
            now = self._clock()
            entry = HistoryEntry(
                id=new_entry_id(now, self._all_ids()),
                ts=format_ts(now),
                prompt=cleaned,
            )
            stored_image = None
            if image is not None and extension is not None:
                stored_image = self.images.store(image, extension, now)
                entry = replace(entry, image=stored_image)

            live = self._live.with_entries([*self._live.entries, entry])
            cut = self._plan_cut(live)
            try:
                self._commit([cut.archive, cut.live] if cut else [live])
            except StorageIOError:
                if stored_image:
                    self._discard_image(stored_image)
                raise
            self._count_archived(cut)
            self._after_mutation("append", PageKind.LIVE, entry.id)
            return entry

    def overwrite(self, entry_id: str, prompt: str, page_key: str | None = None) -> HistoryEntry:
        """Replace the prompt text; ``ts`` and the image stay as they are."""
        cleaned = _clean_prompt(prompt)
        entry_id = entry_id.strip()
        with self._lock:
            page = self._locate(entry_id, page_key)
            updated = replace(page.get(entry_id), prompt=cleaned)
            self._commit([page.with_entry(updated)])
            self._after_mutation("overwrite", page.kind, entry_id)
            return updated

    def delete(self, entry_id: str, page_key: str | None = None) -> HistoryEntry:
        """Remove the entry and its image file from whichever page holds it.

        The image goes first so a failed delete surfaces before the entry is
        dropped; a failed commit writes the image back.
        """
        entry_id = entry_id.strip()
        with self._lock:
            page = self._locate(entry_id, page_key)
            removed = page.get(entry_id)
            taken = self._take_image(removed.image)
            try:
                self._commit([page.without(entry_id)])
            except StorageIOError:
                self._put_back_image(removed.image, taken)
                raise
            self._after_mutation("delete", page.kind, entry_id)
            return removed

    def replace_image(
        self,
        entry_id: str,
        content: bytes,
        image_name: str = "image.png",
        page_key: str | None = None,
    ) -> HistoryEntry:
        """Attach ``content`` as the entry's only image, deleting the previous file."""
        extension = image_extension(image_name)
        entry_id = entry_id.strip()
        with self._lock:
            page = self._locate(entry_id, page_key)
            current = page.get(entry_id)
            new_path = self.images.store(content, extension, self._clock())
            old_path = current.image if current.image != new_path else None
            try:
                taken = self._take_image(old_path)
            except StorageIOError:
                self._discard_image(new_path)
                raise
            updated = replace(current, image=new_path)
            try:
                self._commit([page.with_entry(updated)])
            except StorageIOError:
                self._discard_image(new_path)
                self._put_back_image(old_path, taken)
                raise
            self._after_mutation("replace_image", page.kind, entry_id)
            return updated

    # Rendering --------------------------------------------------------

    def set_server_port(self, port: int) -> None:
        """Point rendered pages at the port the local server actually bound."""
        with self._lock:
            if port == self.server_port:
                return
            self.server_port = port
            self.render_all()

    def render_all(self) -> None:
        with self._lock:
            archive_keys = tuple(self._archives)
            for page in (self._live, *self._archives.values()):
                write_if_changed(page.html_path, self._render(page, archive_keys))

    # Internal helpers -------------------------------------------------

    def _page(self, page_key: str) -> HistoryPage:
        if page_key == LIVE_PAGE_KEY:
            return self._live
        if is_archive_key(page_key) and page_key in self._archives:
            return self._archives[page_key]
        raise PageNotFoundError(page_key)

    def _locate(self, entry_id: str, page_key: str | None) -> HistoryPage:
        if page_key is not None:
            page = self._page(page_key)
            if page.index_of(entry_id) is None:
                raise EntryNotFoundError(entry_id)
            return page
        for key in self.page_keys():
            page = self._page(key)
            if page.index_of(entry_id) is not None:
                return page
        raise EntryNotFoundError(entry_id)

    def _all_ids(self) -> set[str]:
        ids = self._live.ids()
        for page in self._archives.values():
            ids |= page.ids()
        return ids

    def _plan_cut(self, live: HistoryPage) -> ArchiveCut | None:
        key = date_key(self._clock())
        cut = self.archiver.cut(live, self._archives.get(key), key)
        if cut is None:
            return None
        logger.info(
            "Archiving %s entries into %s",
            len(cut.moved),
            cut.archive.json_path.name,
            extra={"ctx_archive": key, "ctx_created": cut.created},
        )
        return cut

    def _count_archived(self, cut: ArchiveCut | None) -> None:
        if cut is not None:
            ARCHIVED_ENTRIES.inc(len(cut.moved))

    def _commit(self, changed: list[HistoryPage]) -> None:
        """Persist ``changed`` pages and their HTML, then adopt them in memory."""
        next_live = self._live
        next_archives = dict(self._archives)
        for page in changed:
            if page.kind is PageKind.LIVE:
                next_live = page
            else:
                next_archives[page.key] = page

        archive_keys = tuple(next_archives)
        html_pages = list(changed)
        new_archive = set(next_archives) != set(self._archives)
        if new_archive and all(page.kind is not PageKind.LIVE for page in html_pages):
            html_pages.append(next_live)
        rendered = [(page, self._render(page, archive_keys)) for page in html_pages]

        written: list[HistoryPage] = []
        try:
            for page in changed:
                page.persist()
                written.append(page)
            for page, html in rendered:
                write_if_changed(page.html_path, html)
        except StorageIOError:
            logger.exception("Persisting history failed; restoring previous state")
            self._restore(written, html_pages)
            raise

        self._live = next_live
        self._archives = next_archives
        LIVE_ENTRIES.set(len(next_live.entries))

    def _restore(self, written: list[HistoryPage], html_pages: list[HistoryPage]) -> None:
        archive_keys = tuple(self._archives)
        for page in written:
            try:
                previous = self._current(page.key)
                if previous is None:
                    remove_file(page.json_path)
                    remove_file(page.html_path)
                else:
                    previous.persist()
            except StorageIOError:
                logger.exception("Could not restore %s", page.json_path.name)
        for page in html_pages:
            previous = self._current(page.key)
            if previous is None:
                continue
            try:
                write_if_changed(previous.html_path, self._render(previous, archive_keys))
            except StorageIOError:
                logger.exception("Could not restore %s", previous.html_path.name)

    def _current(self, page_key: str) -> HistoryPage | None:
        if page_key == LIVE_PAGE_KEY:
            return self._live
        return self._archives.get(page_key)

    def _render(self, page: HistoryPage, archive_keys: tuple[str, ...]) -> bytes:
        context = PageContext(
            title=page.title,
            page_key=page.key,
            api_base=f"http://127.0.0.1:{self.server_port}",
            archive_keys=tuple(sorted(archive_keys, reverse=True)),
            confirm_delete=self.confirm_delete,
        )
        return render_bytes(page.entries, page.kind, context)

    def _take_image(self, rel_path: str | None) -> bytes | None:
        """Remove an entry's image file ahead of a commit; ``StorageIOError`` propagates."""
        if not rel_path:
            return None
        try:
            return self.images.take(rel_path)
        except InvalidImageError as exc:
            logger.warning("Image path %s is not under images/; leaving it alone: %s", rel_path, exc)
            return None

    def _put_back_image(self, rel_path: str | None, data: bytes | None) -> None:
        if not rel_path or data is None:
            return
        try:
            self.images.put_back(rel_path, data)
        except StorageIOError:
            logger.exception("Could not restore image %s", rel_path)

    def _discard_image(self, rel_path: str) -> None:
        try:
            self.images.delete(rel_path)
        except (StorageIOError, InvalidImageError):
            logger.exception("Could not delete image %s", rel_path)

    def _after_mutation(self, operation: str, kind: PageKind, entry_id: str) -> None:
        self._revision += 1
        MUTATIONS.labels(operation=operation, page_kind=kind.value).inc()
        logger.info(
            "History %s applied",
            operation,
            extra={"ctx_entry_id": entry_id, "ctx_page_kind": kind.value, "ctx_revision": self._revision},
        )


def _clean_prompt(prompt: str) -> str:
    cleaned = prompt.strip()
    if not cleaned:
        raise InvalidPromptError("prompt is empty")
    return cleaned


__all__ = ["HistoryStore"]
