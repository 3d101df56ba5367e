"""History page routes used by the rendered History*.html pages.

Handlers are plain ``def`` so FastAPI runs them on its worker threads: the store
lock is a blocking lock and a mutation, once started, runs to completion even
if the browser drops the connection.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from prompt_history.api.dependencies import get_history_store
from prompt_history.history.store import HistoryStore
from prompt_history.models.dto import (
    DeleteResponse,
    EntryListResponse,
    EntryOut,
    EntryResponse,
    OverwriteRequest,
    PagesResponse,
    PromptResponse,
)

router = APIRouter()


@router.get("/pages", response_model=PagesResponse, summary="List the live page and archive pages")
def list_pages(store: HistoryStore = Depends(get_history_store)) -> PagesResponse:
    return PagesResponse(pages=store.page_keys())


@router.get("/pages/{page}/entries", response_model=EntryListResponse, summary="List entries of one page")
def list_entries(page: str, store: HistoryStore = Depends(get_history_store)) -> EntryListResponse:
    entries = store.list_entries(page)
    return EntryListResponse(page=page, entries=[EntryOut.from_entry(entry) for entry in entries])


@router.get("/pages/{page}/entries/{entry_id}", response_model=EntryResponse, summary="Read one entry")
def read_entry(page: str, entry_id: str, store: HistoryStore = Depends(get_history_store)) -> EntryResponse:
    entry = store.get(entry_id, page_key=page)
    return EntryResponse(page=page, entry=EntryOut.from_entry(entry))


@router.get(
    "/pages/{page}/entries/{entry_id}/prompt",
    response_model=PromptResponse,
    summary="Prompt text for copying to the clipboard",
)
def copy_prompt(page: str, entry_id: str, store: HistoryStore = Depends(get_history_store)) -> PromptResponse:
    entry = store.get(entry_id, page_key=page)
    return PromptResponse(id=entry.id, prompt=entry.prompt)


@router.post(
    "/pages/{page}/entries/{entry_id}/overwrite",
    response_model=EntryResponse,
    summary="Replace an entry's prompt text",
)
def overwrite_entry(
    page: str,
    entry_id: str,
    request: OverwriteRequest,
    store: HistoryStore = Depends(get_history_store),
) -> EntryResponse:
    entry = store.overwrite(entry_id, request.prompt, page_key=page)
    return EntryResponse(page=page, entry=EntryOut.from_entry(entry))


@router.post(
    "/pages/{page}/entries/{entry_id}/delete",
    response_model=DeleteResponse,
    summary="Delete an entry and its image",
)
def delete_entry(page: str, entry_id: str, store: HistoryStore = Depends(get_history_store)) -> DeleteResponse:
    removed = store.delete(entry_id, page_key=page)
    return DeleteResponse(deleted=removed.id)


@router.post(
    "/pages/{page}/entries/{entry_id}/image",
    response_model=EntryResponse,
    summary="Attach or replace an entry's image",
)
def attach_image(
    page: str,
    entry_id: str,
    file: UploadFile = File(...),
    store: HistoryStore = Depends(get_history_store),
) -> EntryResponse:
    content = file.file.read()
    entry = store.replace_image(entry_id, content, file.filename or "upload.bin", page_key=page)
    return EntryResponse(page=page, entry=EntryOut.from_entry(entry))


@router.get("/pages/{page}/entries/{entry_id}/image", summary="Image bytes for copying to the clipboard")
def read_image(page: str, entry_id: str, store: HistoryStore = Depends(get_history_store)) -> Response:
    content, media_type = store.read_image(entry_id, page_key=page)
    return Response(content=content, media_type=media_type, headers={"Cache-Control": "no-store"})


__all__ = ["router"]
