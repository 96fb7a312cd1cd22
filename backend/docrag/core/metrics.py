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
    "docrag_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "docrag_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

PAGES_TOTAL = Counter(
    "docrag_pages_total",
    "Crawled pages by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CRAWL_DURATION = Histogram(
    "docrag_crawl_duration_seconds",
    "Wall time of a crawl run",
    registry=REGISTRY,
)

PASSAGES_INDEXED = Counter(
    "docrag_passages_indexed_total",
    "Passages embedded and stored in the index",
    registry=REGISTRY,
)

EMBEDDING_FAILURES = Counter(
    "docrag_embedding_failures_total",
    "Passages skipped because the embedding service failed",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "docrag_index_passages",
    "Number of passages stored in the index",
    registry=REGISTRY,
)

ANSWER_LATENCY = Histogram(
    "docrag_answer_latency_seconds",
    "Latency of language-model answer calls",
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
    "PAGES_TOTAL",
    "CRAWL_DURATION",
    "PASSAGES_INDEXED",
    "EMBEDDING_FAILURES",
    "INDEX_SIZE",
    "ANSWER_LATENCY",
    "metrics_response",
]
