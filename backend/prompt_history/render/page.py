"""HTML rendering of history pages.

Rendering is a pure function of the entries and the page context: no clock, no
filesystem state beyond the packaged templates, and a stable entry order, so an
unchanged page re-renders to identical bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from html import escape
from pathlib import Path
from string import Template
from typing import Sequence

import orjson

from prompt_history.models.entities import HistoryEntry, PageKind
from prompt_history.utils.paths import archive_html_name

TEMPLATE_DIR = Path(__file__).with_name("templates")


@dataclass(frozen=True, slots=True)
class PageContext:
    """Everything besides the entries that ends up in a rendered page."""

    title: str
    page_key: str
    api_base: str
    archive_keys: tuple[str, ...] = ()
    confirm_delete: bool = True


@lru_cache(maxsize=None)
def _template(name: str) -> str:
    return (TEMPLATE_DIR / name).read_text(encoding="utf-8")


def render(entries: Sequence[HistoryEntry], kind: PageKind, context: PageContext) -> str:
    """Render a live or archive page."""
    ordered = sorted(entries, key=lambda entry: entry.id, reverse=True)
    cards = "\n".join(_render_card(entry) for entry in ordered)
    if not cards:
        cards = '<p class="empty">No history yet.</p>'
    archive_block = _render_archive_links(context.archive_keys) if kind is PageKind.LIVE else ""
    page_config = {
        "apiBase": context.api_base,
        "pageKey": context.page_key,
        "confirmDelete": context.confirm_delete,
    }
    return Template(_template("page.html")).substitute(
        title=escape(context.title, quote=False),
        style=_template("history.css"),
        archives=archive_block,
        cards=cards,
        page_config=_script_json(page_config),
        script=_template("history.js"),
    )


def render_bytes(entries: Sequence[HistoryEntry], kind: PageKind, context: PageContext) -> bytes:
    return render(entries, kind, context).encode("utf-8")


def _render_card(entry: HistoryEntry) -> str:
    entry_id = escape(entry.id)
    image_path = entry.image or ""
    image_attr = escape(image_path)
    if entry.has_image:
        images_block = (
            f'<div class="image-item is-selected" data-image-path="{image_attr}">'
            f'<a class="thumb-image-link" href="{image_attr}" target="_blank" rel="noopener noreferrer">'
            f'<img class="thumb-image" src="{image_attr}" alt="history image" loading="lazy" /></a>'
            f'<a class="thumb-path" href="{image_attr}" target="_blank" rel="noopener noreferrer">'
            f"{escape(image_path, quote=False)}</a></div>"
        )
        upload_state, upload_text = "has-image", "Image attached (drop or click to replace)"
    else:
        images_block = '<span class="muted">No image</span>'
        upload_state, upload_text = "needs-image", "Add image: drag &amp; drop or click"
    copy_disabled = "" if entry.has_image else " disabled"
    return (
        f'<article class="entry" data-history-id="{entry_id}" '
        f'data-has-image="{"true" if entry.has_image else "false"}" data-selected-image="{image_attr}">'
        f'<header class="entry-header"><span class="timestamp">{escape(entry.ts, quote=False)}</span></header>'
        '<div class="entry-body"><section class="prompt-pane"><div class="prompt-toolbar">'
        '<button class="btn overwrite-btn">Overwrite</button>'
        '<button class="btn copy-btn">Copy</button>'
        '<button class="btn delete-btn">Delete</button></div>'
        f'<textarea class="prompt-editor" spellcheck="false">{escape(entry.prompt, quote=False)}</textarea>'
        '</section><section class="media-pane">'
        f'<section class="upload" data-history-id="{entry_id}"><div class="dropzone {upload_state}">'
        f'{upload_text}</div><input class="file-input" type="file" accept=".png,.jpg,.jpeg,.webp" /></section>'
        f'<section class="images">{images_block}</section>'
        f'<button class="btn image-copy-btn"{copy_disabled}>Copy image to clipboard</button>'
        "</section></div></article>"
    )


def _render_archive_links(archive_keys: Sequence[str]) -> str:
    if not archive_keys:
        return ""
    links = "".join(
        f'<a class="archive-link" href="{escape(name)}" target="_blank" rel="noopener noreferrer">'
        f"{escape(name, quote=False)}</a>"
        for name in (archive_html_name(key) for key in sorted(archive_keys, reverse=True))
    )
    return f'<section class="archives"><h2>Archives</h2><div class="archive-list">{links}</div></section>'


def _script_json(payload: dict[str, object]) -> str:
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS).decode("utf-8").replace("</", "<\\/")


__all__ = ["PageContext", "render", "render_bytes", "TEMPLATE_DIR"]
