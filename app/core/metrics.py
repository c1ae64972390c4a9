"""Application metrics using the Prometheus client library.

All metrics live here so there is one inventory of what the service
measures.  Other modules import a metric and increment/observe it at the
point of action.

Counters only go up and are read through rate(); gauges are snapshots of
current state; histograms bucket observations so Prometheus can compute
percentiles:

    histogram_quantile(0.95, rate(http_request_duration_seconds_bucket[5m]))

Prometheus scrapes GET /metrics (see app.api.metrics_endpoint).
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
    # Progress views are cached and should land in the first buckets;
    # cascading completions take a few round-trips under a row lock.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

PROGRESSION_TRANSITIONS = Counter(
    "progression_transitions_total",
    "Status transitions applied by the progression engine",
    ["entity", "status"],  # entity: course|subject|trainee_subject|trainee_task
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "user" or "ip"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache operations by result",
    ["operation"],  # "hit", "miss", "invalidate"
)

SIDE_EFFECTS = Counter(
    "side_effects_total",
    "Post-commit side effects by kind and outcome",
    ["kind", "outcome"],  # kind: email|notification; outcome: queued|failed
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "email"
)
