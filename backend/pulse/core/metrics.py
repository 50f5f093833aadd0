"""
Prometheus metrics for Standup Pulse, scraped from /metrics.

Label sets stay small: HTTP series are labelled by route template, never by
raw path, and analytics series by job / alert type / badge level, never by
person or workspace.
"""
import time
import logging
import re
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

APP_INFO = Info('standup_pulse', 'Application build information')

# HTTP
HTTP_REQUESTS_TOTAL = Counter(
    'http_requests_total', 'HTTP requests served', ['method', 'endpoint', 'status_code']
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    'http_request_duration_seconds', 'HTTP request latency', ['method', 'endpoint'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
HTTP_REQUESTS_IN_PROGRESS = Gauge(
    'http_requests_in_progress', 'HTTP requests being served', ['method', 'endpoint']
)

# Database
DB_OPERATIONS_TOTAL = Counter(
    'db_operations_total', 'Store operations by outcome', ['operation', 'table', 'status']
)
DB_OPERATION_DURATION_SECONDS = Histogram(
    'db_operation_duration_seconds', 'Store operation latency', ['operation', 'table'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
)
DB_CONNECTION_POOL_SIZE = Gauge('db_connection_pool_size', 'Configured connection pool size')
DB_CONNECTION_POOL_AVAILABLE = Gauge('db_connection_pool_available', 'Idle connections in the pool')

# Batch passes
BATCH_RUNS_TOTAL = Counter('batch_runs_total', 'Batch passes by outcome', ['job', 'status'])
BATCH_DURATION_SECONDS = Histogram(
    'batch_duration_seconds', 'Batch pass duration', ['job'],
    buckets=(0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)
BATCH_UNIT_FAILURES = Counter(
    'batch_unit_failures_total',
    'Per-person or per-detector failures isolated inside a batch pass',
    ['job', 'unit'],
)
LAST_BATCH_TIMESTAMP = Gauge(
    'last_batch_timestamp_seconds', 'Unix time of the last successful pass', ['job']
)

# Analytics outcomes
ALERTS_TOTAL = Counter('alerts_total', 'Alerts created or repeated', ['alert_type', 'action'])
ALERTS_EXPIRED_TOTAL = Counter('alerts_expired_total', 'Alerts auto-resolved after expiry')
ACHIEVEMENTS_AWARDED_TOTAL = Counter(
    'achievements_awarded_total', 'Badges newly awarded', ['achievement_type', 'level']
)

# Circuit breakers; state values come from resilience.STATE_GAUGE_VALUES
CIRCUIT_BREAKER_STATE = Gauge(
    'circuit_breaker_state', 'Circuit state (0=closed, 1=half_open, 2=open)', ['name']
)
CIRCUIT_BREAKER_FAILURES = Counter(
    'circuit_breaker_failures_total', 'Failed calls through a breaker', ['name']
)
CIRCUIT_BREAKER_CALLS_BLOCKED = Counter(
    'circuit_breaker_calls_blocked_total', 'Calls refused by an open breaker', ['name']
)


def set_app_info(version: str, environment: str = "production"):
    APP_INFO.info({'version': version, 'environment': environment})


def fold_ids(path: str) -> str:
    return re.sub(r"/\d+", "/{id}", path)


def endpoint_label(request: Request) -> str:
    """Route template when routing matched, else the path with numeric ids folded."""
    template = getattr(request.scope.get("route"), "path", None)
    return template or fold_ids(request.url.path)


@contextmanager
def _timed(histogram: Histogram) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        histogram.observe(time.perf_counter() - started)


@contextmanager
def track_db_operation(operation: str, table: str) -> Iterator[None]:
    """
    Count and time one store operation.

    Usage:
        with track_db_operation('upsert', 'performance_metric'):
            session.execute(stmt)
    """
    with _timed(DB_OPERATION_DURATION_SECONDS.labels(operation=operation, table=table)):
        try:
            yield
        except Exception:
            DB_OPERATIONS_TOTAL.labels(operation=operation, table=table, status='error').inc()
            raise
        DB_OPERATIONS_TOTAL.labels(operation=operation, table=table, status='success').inc()


@contextmanager
def track_batch_run(job: str) -> Iterator[None]:
    """Count and time one batch pass; only a pass that completes moves the last-run gauge."""
    with _timed(BATCH_DURATION_SECONDS.labels(job=job)):
        try:
            yield
        except Exception:
            BATCH_RUNS_TOTAL.labels(job=job, status='error').inc()
            raise
        BATCH_RUNS_TOTAL.labels(job=job, status='success').inc()
        LAST_BATCH_TIMESTAMP.labels(job=job).set(time.time())


def record_unit_failure(job: str, unit: str):
    BATCH_UNIT_FAILURES.labels(job=job, unit=unit).inc()


def update_circuit_breaker_metrics():
    """Refresh the state gauge; reading `state` also moves expired OPEN breakers to HALF_OPEN."""
    from pulse.core.resilience import circuit_breakers, STATE_GAUGE_VALUES

    for name, cb in circuit_breakers.items():
        CIRCUIT_BREAKER_STATE.labels(name=name).set(STATE_GAUGE_VALUES[cb.state])


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Request count, latency and in-flight gauge per route. The scrape itself is not counted."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == '/metrics':
            return await call_next(request)

        method = request.method
        in_flight = HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=fold_ids(request.url.path))
        in_flight.inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            in_flight.dec()
            endpoint = endpoint_label(request)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - started
            )


async def metrics_endpoint(request: Request) -> Response:
    update_circuit_breaker_metrics()
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
