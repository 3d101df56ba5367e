"""FastAPI application setup for Prompt History."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prompt_history.api.dependencies import get_history_store
from prompt_history.api.routes_admin import router as admin_router
from prompt_history.api.routes_history import router as history_router
from prompt_history.core.errors import (
    EntryNotFoundError,
    HistoryError,
    ImageNotFoundError,
    InvalidImageError,
    InvalidPromptError,
    PageNotFoundError,
)
from prompt_history.core.logging import configure_logging, get_logger
from prompt_history.core.metrics import REQUEST_LATENCY
from prompt_history.models.dto import ErrorResponse
from prompt_history.history.store import HistoryStore

logger = get_logger(__name__)

# History pages are opened straight from disk (Origin: null) or via a local server.
LOCAL_ORIGIN_REGEX = r"^https?://(127\.0\.0\.1|localhost)(:\d+)?$"

_STATUS_BY_ERROR: dict[type[HistoryError], int] = {
    EntryNotFoundError: 404,
    PageNotFoundError: 404,
    ImageNotFoundError: 404,
    InvalidPromptError: 400,
    InvalidImageError: 400,
}


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_app(store: HistoryStore | None = None) -> FastAPI:
    """Build the application, optionally bound to an already loaded store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Load history before the first page asks for it."""
        resolve = app.dependency_overrides.get(get_history_store, get_history_store)
        resolve()
        yield

    app = FastAPI(
        title="Prompt History",
        lifespan=lifespan,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["null"],
        allow_origin_regex=LOCAL_ORIGIN_REGEX,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    if store is not None:
        app.dependency_overrides[get_history_store] = lambda: store

    app.include_router(history_router, prefix="", tags=["history"])
    app.include_router(admin_router, prefix="", tags=["admin"])

    @app.middleware("http")
    async def observe_latency(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")
        REQUEST_LATENCY.labels(endpoint=path, method=request.method).observe(time.perf_counter() - started)
        return response

    @app.exception_handler(HistoryError)
    async def handle_history_error(request: Request, exc: HistoryError) -> JSONResponse:
        for error_type, status_code in _STATUS_BY_ERROR.items():
            if isinstance(exc, error_type):
                return _error_response(status_code, str(exc))
        logger.error(
            "History operation failed: %s",
            exc,
            extra={"ctx_path": request.url.path},
        )
        return _error_response(500, "history operation failed")

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        return _error_response(422, str(first.get("msg", "invalid request")))

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return app


configure_logging()

app = create_app()

__all__ = ["app", "create_app", "LOCAL_ORIGIN_REGEX"]
