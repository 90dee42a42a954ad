"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

REGISTRY = CollectorRegistry()

FILES_PROCESSED = Counter(
    "codeseek_index_files_total",
    "Files visited by index updates, by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CHUNKS_CREATED = Counter(
    "codeseek_index_chunks_created_total",
    "Chunks produced by index rebuilds",
    registry=REGISTRY,
)

INDEX_DURATION = Histogram(
    "codeseek_index_duration_seconds",
    "Duration of full index updates",
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "codeseek_search_latency_seconds",
    "Latency of search queries",
    labelnames=("mode",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "codeseek_index_chunks",
    "Number of chunks stored in the most recently updated index",
    registry=REGISTRY,
)


def metrics_text() -> str:
    """Render metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY).decode("utf-8")


__all__ = [
    "REGISTRY",
    "FILES_PROCESSED",
    "CHUNKS_CREATED",
    "INDEX_DURATION",
    "SEARCH_LATENCY",
    "INDEX_SIZE",
    "metrics_text",
]
