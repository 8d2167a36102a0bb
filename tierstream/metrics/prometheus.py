"""Prometheus metrics - minimal implementation."""
from prometheus_client import Counter, Histogram

# Relayed streams by final outcome
streams_total = Counter(
    "tierstream_streams_total",
    "Total relayed streams",
    ["use_case", "tier", "outcome"],
)

# Stream duration from first write to close
stream_latency_ms = Histogram(
    "tierstream_stream_latency_ms",
    "Stream duration in milliseconds",
    ["use_case", "tier"],
    buckets=[100, 500, 1000, 2000, 5000, 10000, 20000, 30000, 60000],
)

# Pre-stream rejections
auth_failures_total = Counter(
    "tierstream_auth_failures_total",
    "Total rejected credentials",
    ["reason"],
)

validation_failures_total = Counter(
    "tierstream_validation_failures_total",
    "Total rejected request payloads",
    ["use_case", "field"],
)

# In-band upstream failures
upstream_errors_total = Counter(
    "tierstream_upstream_errors_total",
    "Total upstream model failures delivered in-band",
    ["provider", "kind"],
)

# Public key set refreshes
jwks_refresh_total = Counter(
    "tierstream_jwks_refresh_total",
    "Total public key set refresh attempts",
    ["outcome"],
)
