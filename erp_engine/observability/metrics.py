"""Prometheus metric definitions for ERP query engine self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
SKILL_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0)
RPC_DURATION_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)

# ---------------------------------------------------------------------------
# Request-level metrics (HTTP surface)
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "erp_engine_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "erp_engine_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

REQUESTS_IN_PROGRESS = Gauge(
    "erp_engine_requests_in_progress",
    "Number of requests currently being processed",
    labelnames=["endpoint"],
)

# ---------------------------------------------------------------------------
# Skill metrics
# ---------------------------------------------------------------------------

SKILL_DURATION = Histogram(
    "erp_engine_skill_duration_seconds",
    "Duration of individual skill executions in seconds",
    labelnames=["skill"],
    buckets=SKILL_DURATION_BUCKETS,
)

SKILL_CALLS_TOTAL = Counter(
    "erp_engine_skill_calls_total",
    "Total number of skill executions",
    labelnames=["skill", "status"],
)

# ---------------------------------------------------------------------------
# ERP transport metrics
# ---------------------------------------------------------------------------

RPC_CALLS_TOTAL = Counter(
    "erp_engine_rpc_calls_total",
    "Total number of JSON-RPC calls sent to the ERP",
    labelnames=["model", "method", "status"],
)

RPC_RETRIES_TOTAL = Counter(
    "erp_engine_rpc_retries_total",
    "Total number of JSON-RPC retry attempts after a transient failure",
    labelnames=["method"],
)

RPC_DURATION = Histogram(
    "erp_engine_rpc_duration_seconds",
    "Duration of JSON-RPC calls including retries, in seconds",
    labelnames=["method"],
    buckets=RPC_DURATION_BUCKETS,
)

# ---------------------------------------------------------------------------
# Cache metrics
# ---------------------------------------------------------------------------

CACHE_EVENTS_TOTAL = Counter(
    "erp_engine_cache_events_total",
    "Query cache events",
    labelnames=["event"],
)

# ---------------------------------------------------------------------------
# Info metrics
# ---------------------------------------------------------------------------

APP_INFO = Info(
    "erp_engine",
    "ERP query engine build information",
)
