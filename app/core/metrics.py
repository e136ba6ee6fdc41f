"""Application metrics using the Prometheus client library.

This module defines all metrics in one place: a single inventory of
everything the service measures.  Other modules import specific metrics
and increment/observe them at the point of action.

Prometheus scrapes GET /metrics; counters only go up, so dashboards use
rate() over them, e.g.

  rate(progress_observations_total{outcome="dropped"}[5m])
    → how often players send intervals we have to throw away
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress tracking metrics
# ---------------------------------------------------------------------------

OBSERVATIONS_RECORDED = Counter(
    "progress_observations_total",
    "Playback observations applied to a progress record",
    ["outcome"],  # "merged", "dropped" (bad interval), "position_only"
)

VIDEOS_COMPLETED = Counter(
    "progress_videos_completed_total",
    "Progress records that crossed the completion threshold",
)

STORAGE_ERRORS = Counter(
    "progress_storage_errors_total",
    "Progress store operations that failed",
    ["operation"],
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
