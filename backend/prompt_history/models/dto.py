"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from prompt_history.models.entities import HistoryEntry


class EntryOut(BaseModel):
    id: str
    ts: str
    prompt: str
    lines: list[str]
    image: str | None = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> "EntryOut":
        return cls(id=entry.id, ts=entry.ts, prompt=entry.prompt, lines=entry.lines, image=entry.image)


class OverwriteRequest(BaseModel):
    prompt: str = Field(..., description="Replacement prompt text")


class OkResponse(BaseModel):
    ok: Literal[True] = True


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str


class RevisionResponse(OkResponse):
    revision: int


class PagesResponse(OkResponse):
    pages: list[str]


class EntryListResponse(OkResponse):
    page: str
    entries: list[EntryOut]


class EntryResponse(OkResponse):
    page: str
    entry: EntryOut


class PromptResponse(OkResponse):
    id: str
    prompt: str


class DeleteResponse(OkResponse):
    deleted: str


__all__ = [
    "EntryOut",
    "OverwriteRequest",
    "OkResponse",
    "ErrorResponse",
    "RevisionResponse",
    "PagesResponse",
    "EntryListResponse",
    "EntryResponse",
    "PromptResponse",
    "DeleteResponse",
]
