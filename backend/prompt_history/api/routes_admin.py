"""Administrative routes for Prompt History."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_history.api.dependencies import get_history_store
from prompt_history.core.metrics import metrics_response
from prompt_history.history.store import HistoryStore
from prompt_history.models.dto import OkResponse, RevisionResponse

router = APIRouter()


@router.get("/ping", response_model=OkResponse, summary="Liveness check used by history pages")
def ping() -> OkResponse:
    return OkResponse()


@router.get("/revision", response_model=RevisionResponse, summary="Mutation counter for page auto-reload")
def revision(store: HistoryStore = Depends(get_history_store)) -> RevisionResponse:
    return RevisionResponse(revision=store.revision)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
