"""Prometheus metrics for the device-command pipeline."""

from prometheus_client import Counter, Histogram

# Outbound HTTP
HTTP_ATTEMPTS = Counter(
    "hearth_http_attempts_total",
    "Outbound device API attempts",
    labelnames=["outcome"],
)

RETRIES_SCHEDULED = Counter(
    "hearth_retries_scheduled_total",
    "Retries scheduled after a transient failure",
    labelnames=["error_code"],
)

RETRIES_EXHAUSTED = Counter(
    "hearth_retries_exhausted_total",
    "Calls that failed after every attempt",
)

RETRY_DELAY = Histogram(
    "hearth_retry_delay_seconds",
    "Backoff delay before a retry",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 13.0),
)

# Idempotency
IDEMPOTENCY_KEYS = Counter(
    "hearth_idempotency_keys_total",
    "Idempotency key registrations",
    labelnames=["result"],  # issued | reused
)

IDEMPOTENCY_SWEPT = Counter(
    "hearth_idempotency_records_swept_total",
    "Expired idempotency records removed by the cleanup sweep",
)

# Dedup
DEDUP_SUPPRESSED = Counter(
    "hearth_dedup_suppressed_total",
    "Commands suppressed as double-submits",
)

# Rate limiting
RATE_LIMIT_DECISIONS = Counter(
    "hearth_rate_limit_decisions_total",
    "Rate limit checks by endpoint class",
    labelnames=["endpoint_key", "decision"],  # allowed | rejected
)

# Cache
CACHE_HITS = Counter(
    "hearth_cache_hits_total",
    "Cache-aside hits",
)

CACHE_MISSES = Counter(
    "hearth_cache_misses_total",
    "Cache-aside misses (fetch performed)",
)

CACHE_INVALIDATIONS = Counter(
    "hearth_cache_invalidations_total",
    "Manual cache invalidations",
)

# Commands
COMMAND_OUTCOMES = Counter(
    "hearth_command_outcomes_total",
    "Device command outcomes",
    labelnames=["device", "action", "status"],
)
