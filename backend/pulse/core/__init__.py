"""
Core infrastructure modules for Standup Pulse.

This package contains cross-cutting concerns:
- config: Application configuration management
- logging: Structured logging with request and batch-run correlation ids
- metrics: Prometheus metrics
- resilience: Circuit breakers and retry logic
- health: Health check functionality
- cache: TTL cache with an injectable clock
- async_utils: Async/sync bridge utilities
- exceptions: Custom exception classes
"""
from pulse.core.config import Settings, get_settings
from pulse.core.resilience import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
    retry_with_backoff,
    with_fallback,
    resilient_startup,
    get_circuit_breaker,
    get_all_circuit_breaker_stats,
)
from pulse.core.logging import (
    setup_logging,
    LoggingMiddleware,
    get_request_id,
    set_request_id,
    get_run_id,
    batch_run_context,
)
from pulse.core.metrics import (
    PrometheusMiddleware,
    metrics_endpoint,
    track_db_operation,
    track_batch_run,
    set_app_info,
)
from pulse.core.health import (
    HealthChecker,
    HealthCheckResponse,
    get_health_checker,
)
from pulse.core.cache import TTLCache
from pulse.core.async_utils import (
    run_in_thread,
    shutdown_thread_pool,
)
from pulse.core.exceptions import (
    AppException,
    DatabaseException,
    ExternalServiceException,
    SentimentServiceException,
    BatchException,
    NotFoundException,
    ErrorCode,
    ErrorResponse,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitState",
    "retry_with_backoff",
    "with_fallback",
    "resilient_startup",
    "get_circuit_breaker",
    "get_all_circuit_breaker_stats",
    # Logging
    "setup_logging",
    "LoggingMiddleware",
    "get_request_id",
    "set_request_id",
    "get_run_id",
    "batch_run_context",
    # Metrics
    "PrometheusMiddleware",
    "metrics_endpoint",
    "track_db_operation",
    "track_batch_run",
    "set_app_info",
    # Health
    "HealthChecker",
    "HealthCheckResponse",
    "get_health_checker",
    # Cache
    "TTLCache",
    # Async Utils
    "run_in_thread",
    "shutdown_thread_pool",
    # Exceptions
    "AppException",
    "DatabaseException",
    "ExternalServiceException",
    "SentimentServiceException",
    "BatchException",
    "NotFoundException",
    "ErrorCode",
    "ErrorResponse",
]
