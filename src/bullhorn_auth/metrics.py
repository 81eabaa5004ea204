"""
Prometheus metrics for Bullhorn session lifecycle monitoring.

Provides instrumentation for:
- Session acquisitions and their duration
- Cache hits, misses and coalesced waits
- Managed refresh outcomes
- Current session expiry
"""

from prometheus_client import Counter, Gauge, Histogram

# Acquisition metrics
session_acquisitions_total = Counter(
    "bullhorn_session_acquisitions_total",
    "Total number of Bullhorn session acquisitions",
    ["status"],  # status: success, error
)

session_acquisition_duration_seconds = Histogram(
    "bullhorn_session_acquisition_duration_seconds",
    "Time spent on the full authorize/token/login exchange",
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# Cache metrics
session_cache_requests_total = Counter(
    "bullhorn_session_cache_requests_total",
    "Session requests served by CachingSessionClient",
    ["result"],  # result: hit, miss, coalesced
)

# Managed refresh metrics
session_refresh_total = Counter(
    "bullhorn_session_refresh_total",
    "Managed session login attempts by outcome",
    ["result"],  # result: skipped, refreshed, failed
)

session_expires_timestamp_seconds = Gauge(
    "bullhorn_session_expires_timestamp_seconds",
    "Unix timestamp at which the managed session expires",
)


def record_acquisition(success: bool, duration_seconds: float) -> None:
    """Record one acquisition attempt."""
    session_acquisitions_total.labels(status="success" if success else "error").inc()
    session_acquisition_duration_seconds.observe(duration_seconds)


def record_cache_request(result: str) -> None:
    session_cache_requests_total.labels(result=result).inc()


def record_refresh(result: str) -> None:
    session_refresh_total.labels(result=result).inc()
