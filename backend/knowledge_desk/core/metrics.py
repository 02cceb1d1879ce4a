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

REQUEST_COUNT = Counter(
    "kdesk_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "kdesk_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "kdesk_ingest_duration_seconds",
    "Ingest pipeline duration",
    labelnames=("status",),
    registry=REGISTRY,
)

EMBEDDING_CALLS = Counter(
    "kdesk_embedding_calls_total",
    "Embedding provider batch calls",
    labelnames=("outcome",),
    registry=REGISTRY,
)

RERANK_OUTCOMES = Counter(
    "kdesk_rerank_total",
    "Rerank invocations by path taken",
    labelnames=("path",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "kdesk_index_segments",
    "Number of segments stored in the index",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGEST_DURATION",
    "EMBEDDING_CALLS",
    "RERANK_OUTCOMES",
    "INDEX_SIZE",
    "metrics_response",
]
