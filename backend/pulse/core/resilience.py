"""
Resilience patterns for Standup Pulse.

The analytics passes have two outside dependencies: PostgreSQL and the hosted
sentiment service. Each gets a named circuit breaker. A sentiment outage must
degrade scores to neutral and never stop a batch; a database outage fails the
unit of work that hit it and is retried on the next run.

Provides:
- CircuitBreaker and the process-wide breaker registry
- retry_with_backoff (tenacity) that never retries an open circuit
- with_fallback for best-effort helpers
- resilient_startup for the startup steps in main.py
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from threading import Lock
from typing import Callable, Optional, Any, Dict, Type, Tuple

from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    retry_if_exception,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Circuit Breaker
# =============================================================================

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class CircuitBreakerError(Exception):
    """Raised instead of calling a dependency whose circuit is open."""
    def __init__(self, name: str, retry_in: float):
        self.name = name
        self.retry_in = retry_in
        super().__init__(f"[{name}] circuit open, next probe in {retry_in:.0f}s")


class CircuitBreaker:
    """
    Stops calling a dependency after `failure_threshold` consecutive failures.

    After `recovery_timeout` seconds the next call is let through as a probe
    (HALF_OPEN). `half_open_max_calls` successful probes close the circuit;
    a failed probe opens it again.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 30,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._lock = Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._probe_successes = 0
        self._last_failure_at: Optional[float] = None

        self._total_calls = 0
        self._total_failures = 0
        self._total_blocked = 0

    def _move_to(self, state: CircuitState, reason: str):
        """Caller holds the lock."""
        if state == self._state:
            return
        self._state = state
        self._probe_successes = 0
        log = logger.warning if state == CircuitState.OPEN else logger.info
        log(f"Circuit breaker [{self.name}] {state.value.upper()}: {reason}")

        from pulse.core.metrics import CIRCUIT_BREAKER_STATE
        CIRCUIT_BREAKER_STATE.labels(name=self.name).set(STATE_GAUGE_VALUES[state])

    def seconds_until_probe(self) -> float:
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self._last_failure_at))

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self.seconds_until_probe() <= 0:
                self._move_to(CircuitState.HALF_OPEN, "recovery timeout elapsed, probing")
            return self._state

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run func through the breaker.

        Raises:
            CircuitBreakerError: The circuit is open; func is not called
        """
        self._total_calls += 1

        if self.state == CircuitState.OPEN:
            self._total_blocked += 1
            from pulse.core.metrics import CIRCUIT_BREAKER_CALLS_BLOCKED
            CIRCUIT_BREAKER_CALLS_BLOCKED.labels(name=self.name).inc()
            raise CircuitBreakerError(self.name, self.seconds_until_probe())

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        with self._lock:
            self._success_count += 1
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._probe_successes += 1
                if self._probe_successes >= self.half_open_max_calls:
                    self._move_to(CircuitState.CLOSED, "dependency recovered")

    def _on_failure(self, exc: Exception):
        from pulse.core.metrics import CIRCUIT_BREAKER_FAILURES
        CIRCUIT_BREAKER_FAILURES.labels(name=self.name).inc()

        with self._lock:
            self._failure_count += 1
            self._total_failures += 1
            self._success_count = 0
            self._last_failure_at = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._move_to(CircuitState.OPEN, f"probe failed: {exc}")
            elif self._failure_count >= self.failure_threshold:
                self._move_to(CircuitState.OPEN, f"{self._failure_count} consecutive failures: {exc}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "total_calls": self._total_calls,
            "total_failures": self._total_failures,
            "total_blocked": self._total_blocked,
            "seconds_until_probe": round(self.seconds_until_probe(), 1),
        }

    def reset(self):
        with self._lock:
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_at = None
            self._move_to(CircuitState.CLOSED, "manual reset")


# =============================================================================
# Breaker registry
# =============================================================================

# name -> (failure_threshold, recovery_timeout seconds)
DEPENDENCY_BREAKERS = {
    "postgresql": (3, 30),
    "sentiment": (5, 120),
}

circuit_breakers: Dict[str, CircuitBreaker] = {
    name: CircuitBreaker(name, failure_threshold=threshold, recovery_timeout=timeout)
    for name, (threshold, timeout) in DEPENDENCY_BREAKERS.items()
}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    if name not in circuit_breakers:
        circuit_breakers[name] = CircuitBreaker(name)
    return circuit_breakers[name]


def get_all_circuit_breaker_stats() -> Dict[str, Dict[str, Any]]:
    return {name: cb.get_stats() for name, cb in circuit_breakers.items()}


# =============================================================================
# Retry
# =============================================================================

def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    circuit_breaker_name: Optional[str] = None,
):
    """
    Retry the decorated call on `exceptions` with exponential backoff.

    With `circuit_breaker_name`, every attempt goes through that breaker and
    an open circuit propagates CircuitBreakerError at once.

    Example:
        @retry_with_backoff(max_attempts=3, exceptions=(RequestException,),
                            circuit_breaker_name="sentiment")
        def post_completion(payload):
            ...
    """
    def should_retry(exc: BaseException) -> bool:
        return isinstance(exc, exceptions) and not isinstance(exc, CircuitBreakerError)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            cb = get_circuit_breaker(circuit_breaker_name) if circuit_breaker_name else None

            def log_retry(retry_state):
                logger.warning(
                    f"{func.__name__} attempt {retry_state.attempt_number}/{max_attempts} failed: "
                    f"{retry_state.outcome.exception()}"
                )

            retrying = Retrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
                retry=retry_if_exception(should_retry),
                before_sleep=log_retry,
                reraise=True,
            )
            if cb:
                return retrying(cb.call, func, *args, **kwargs)
            return retrying(func, *args, **kwargs)

        return wrapper
    return decorator


def with_fallback(fallback_value: Any = None, log_error: bool = True):
    """Return `fallback_value` instead of raising."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    logger.error(f"{func.__name__} failed, using fallback {fallback_value!r}: {e}")
                return fallback_value
        return wrapper
    return decorator


# =============================================================================
# Startup
# =============================================================================

@dataclass
class StartupResult:
    name: str
    success: bool
    error: Optional[str] = None
    critical: bool = True


def resilient_startup(
    name: str,
    func: Callable,
    critical: bool = True,
    max_attempts: int = 3,
    wait_seconds: float = 5,
) -> StartupResult:
    """
    Run one startup step with fixed-interval retries.

    Never raises; main.py decides from the result whether a failed critical
    step stops the application.
    """
    def log_retry(retry_state):
        logger.warning(
            f"[{name}] Attempt {retry_state.attempt_number}/{max_attempts} failed: "
            f"{retry_state.outcome.exception()}"
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(wait_seconds),
        before_sleep=log_retry,
        reraise=True,
    )
    try:
        retrying(func)
    except Exception as e:
        error_msg = f"Failed after {max_attempts} attempts: {e}"
        if critical:
            logger.error(f"[{name}] CRITICAL: {error_msg}")
        else:
            logger.warning(f"[{name}] Non-critical failure: {error_msg}")
        return StartupResult(name, success=False, error=error_msg, critical=critical)

    logger.info(f"[{name}] Ready")
    return StartupResult(name, success=True, critical=critical)
