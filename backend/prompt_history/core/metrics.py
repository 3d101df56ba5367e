"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

MUTATIONS = Counter(
    "phist_mutations_total",
    "History mutations applied",
    labelnames=("operation", "page_kind"),
    registry=REGISTRY,
)

ARCHIVED_ENTRIES = Counter(
    "phist_archived_entries_total",
    "Entries moved from the live page into an archive",
    registry=REGISTRY,
)

COPIES_SUPPRESSED = Counter(
    "phist_copies_suppressed_total",
    "Copy actions suppressed by the debounce window",
    registry=REGISTRY,
)

LIVE_ENTRIES = Gauge(
    "phist_live_entries",
    "Number of entries on the live page",
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "phist_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "MUTATIONS",
    "ARCHIVED_ENTRIES",
    "COPIES_SUPPRESSED",
    "LIVE_ENTRIES",
    "REQUEST_LATENCY",
    "metrics_response",
]
