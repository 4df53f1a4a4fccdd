"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Detection event sync (reconciled, duplicate, invalid, failed)
- Feed watermark progress
- Reporting cache hits, misses and errors
"""
import re
import time
import logging
from typing import Optional
from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Custom registry so tests can import the module repeatedly
REGISTRY = CollectorRegistry()

# ============================================================================
# Application Info
# ============================================================================

app_info = Info(
    'app',
    'Application information',
    registry=REGISTRY
)

_start_time: Optional[float] = None

app_uptime_seconds = Gauge(
    'app_uptime_seconds',
    'Application uptime in seconds',
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# ============================================================================
# Sync Pipeline Metrics
# ============================================================================

sync_events_total = Counter(
    'sync_events_total',
    'Detection events handled by the sync pipeline',
    ['source', 'outcome'],  # source: live, backfill, api; outcome: reconciled, duplicate, invalid, failed
    registry=REGISTRY
)

sync_reconcile_duration_seconds = Histogram(
    'sync_reconcile_duration_seconds',
    'Time to reconcile one detection event (including commit)',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=REGISTRY
)

sync_watermark_timestamp = Gauge(
    'sync_watermark_timestamp',
    'Highest event timestamp consumed from the realtime feed',
    registry=REGISTRY
)

sync_feed_errors_total = Counter(
    'sync_feed_errors_total',
    'Failed polls against the realtime feed',
    registry=REGISTRY
)

# ============================================================================
# Cache Metrics
# ============================================================================

cache_requests_total = Counter(
    'cache_requests_total',
    'Reporting cache lookups',
    ['result'],  # hit, miss, error
    registry=REGISTRY
)

# Path segments after these prefixes are identifiers (ids or person hashes)
_ID_SEGMENT_PREFIXES = ('organizations', 'cameras', 'persons', 'faces')


def init_metrics(version: str = "1.0.0", name: str = "sentinel-dashboard"):
    """
    Initialize metrics with application info.

    Args:
        version: Application version string
        name: Application name reported in app_info
    """
    global _start_time
    _start_time = time.time()

    app_info.info({
        'version': version,
        'name': name,
    })

    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(
    method: str,
    path: str,
    status_code: int,
    response_time_seconds: float
):
    """
    Record HTTP request metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status_code: Response status code
        response_time_seconds: Response time in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status_code=str(status_code)
    ).inc()

    http_request_duration_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(response_time_seconds)


def record_sync_event(source: str, outcome: str, duration_seconds: Optional[float] = None):
    """Record the outcome of one detection event passing through the pipeline."""
    sync_events_total.labels(source=source, outcome=outcome).inc()
    if duration_seconds is not None:
        sync_reconcile_duration_seconds.observe(duration_seconds)


def record_watermark(timestamp: float):
    sync_watermark_timestamp.set(timestamp)


def record_feed_error():
    sync_feed_errors_total.inc()


def record_cache_result(result: str):
    cache_requests_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format metrics
    """
    if _start_time is not None:
        app_uptime_seconds.set(time.time() - _start_time)
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for the Prometheus exposition format."""
    return CONTENT_TYPE_LATEST


def _normalize_path(path: str) -> str:
    """
    Normalize request path to avoid high cardinality.

    Replaces UUIDs, numeric IDs and the identifier segment that follows a
    resource prefix (person hashes are arbitrary strings) with placeholders.

    Args:
        path: Original request path

    Returns:
        Normalized path
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE
    )
    path = re.sub(r'/\d+(?=/|$)', '/{id}', path)

    segments = path.split('/')
    for index in range(len(segments) - 1):
        if segments[index] in _ID_SEGMENT_PREFIXES:
            following = segments[index + 1]
            if following and following not in ('image', 'files', '{id}'):
                segments[index + 1] = '{id}'
    return '/'.join(segments)
