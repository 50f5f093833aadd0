"""
Health checks for Standup Pulse.

Liveness answers "is the process up", readiness "can it reach PostgreSQL".
The full check also reports the batch scheduler, the roster cache, the
connection pool and whether sentiment scores currently carry any signal.
Only PostgreSQL can make the service unhealthy; everything else degrades it.
"""
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel
from sqlalchemy import text

from pulse.core.cache import TTLCache
from pulse.core.config import get_settings
from pulse.core.resilience import get_circuit_breaker, CircuitState
from pulse.services.db_service import get_db_service

logger = logging.getLogger(__name__)

POOL_SATURATION_PERCENT = 90


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    name: str
    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class HealthCheckResponse(BaseModel):
    status: HealthStatus
    version: str
    timestamp: str
    uptime_seconds: Optional[float] = None
    components: Dict[str, ComponentHealth]


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class HealthChecker:
    """
    Runs the component checks.

    The scheduler and roster cache belong to main.py and are handed in with
    configure() once they exist; until then both report DEGRADED.
    """

    # Failure status when a check raises
    FAILURE_STATUS = {"postgresql": HealthStatus.UNHEALTHY, "scheduler": HealthStatus.UNHEALTHY}

    def __init__(self):
        self.settings = get_settings()
        self._started = time.monotonic()
        self.scheduler = None
        self.roster_cache: Optional[TTLCache] = None

    def configure(self, scheduler=None, roster_cache: Optional[TTLCache] = None):
        self.scheduler = scheduler
        self.roster_cache = roster_cache

    def get_uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    async def _run(self, name: str, check: Callable[[], Awaitable[ComponentHealth]]) -> ComponentHealth:
        """Time one check; an exception becomes a failed component instead of propagating."""
        started = time.perf_counter()
        try:
            result = await check()
        except Exception as e:
            logger.error(f"Health check {name} failed: {e}", extra={"component": name})
            result = ComponentHealth(
                name=name,
                status=self.FAILURE_STATUS.get(name, HealthStatus.DEGRADED),
                message=f"Error: {e}",
            )
        if result.latency_ms is None:
            result.latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return result

    async def _postgres(self) -> ComponentHealth:
        db_service = get_db_service()
        if not db_service._initialized:
            return ComponentHealth(name="postgresql", status=HealthStatus.UNHEALTHY, message="Database not initialized")

        with db_service.get_session() as session:
            session.execute(text("SELECT 1")).fetchone()
        return ComponentHealth(
            name="postgresql",
            status=HealthStatus.HEALTHY,
            message="Connected",
            details={
                "host": self.settings.postgres_host,
                "database": self.settings.postgres_db,
                "entry_count": db_service.get_table_row_count('standup_entry'),
            },
        )

    async def _sentiment(self) -> ComponentHealth:
        # No network call: the breaker reflects the outcome of recent scoring
        if not self.settings.sentiment_configured:
            return ComponentHealth(
                name="sentiment", status=HealthStatus.DEGRADED, message="Not configured (scores are neutral)"
            )
        stats = get_circuit_breaker("sentiment").get_stats()
        if stats["state"] == CircuitState.OPEN.value:
            return ComponentHealth(
                name="sentiment",
                status=HealthStatus.DEGRADED,
                message=f"Circuit open, scores neutral for {stats['seconds_until_probe']}s",
                details=stats,
            )
        return ComponentHealth(
            name="sentiment", status=HealthStatus.HEALTHY, message=f"Model: {self.settings.sentiment_model}", details=stats
        )

    async def _scheduler(self) -> ComponentHealth:
        if self.scheduler is None:
            return ComponentHealth(name="scheduler", status=HealthStatus.DEGRADED, message="Scheduler not configured")
        if not self.scheduler.running:
            return ComponentHealth(name="scheduler", status=HealthStatus.DEGRADED, message="Scheduler not running")

        jobs = {
            job.id: job.next_run_time.isoformat() if job.next_run_time else None
            for job in self.scheduler.get_jobs()
        }
        return ComponentHealth(
            name="scheduler",
            status=HealthStatus.HEALTHY,
            message=f"Running {len(jobs)} batch jobs",
            details={"next_runs": jobs},
        )

    async def _cache(self) -> ComponentHealth:
        if self.roster_cache is None:
            return ComponentHealth(name="cache", status=HealthStatus.DEGRADED, message="Roster cache not configured")
        stats = self.roster_cache.get_stats()
        return ComponentHealth(
            name="cache", status=HealthStatus.HEALTHY, message=f"Hit rate: {stats['hit_rate_percent']}%", details=stats
        )

    async def _connection_pool(self) -> ComponentHealth:
        pool = get_db_service().get_pool_status()
        if pool.get("status") in ("error", "not_initialized"):
            return ComponentHealth(
                name="connection_pool",
                status=HealthStatus.DEGRADED,
                message=pool.get("error", pool["status"]),
                details=pool,
            )

        size = pool.get("pool_size", 0)
        utilization = pool.get("checked_out", 0) / size * 100 if size > 0 else 0
        saturated = utilization > POOL_SATURATION_PERCENT
        return ComponentHealth(
            name="connection_pool",
            status=HealthStatus.DEGRADED if saturated else HealthStatus.HEALTHY,
            message=f"{'High utilization' if saturated else 'Utilization'}: {utilization:.0f}%",
            details=pool,
        )

    async def check_postgres(self) -> ComponentHealth:
        return await self._run("postgresql", self._postgres)

    async def check_all(self) -> HealthCheckResponse:
        checks = {
            "postgresql": self._postgres,
            "scheduler": self._scheduler,
            "cache": self._cache,
            "connection_pool": self._connection_pool,
            "sentiment": self._sentiment,
        }
        components = {name: await self._run(name, check) for name, check in checks.items()}

        if components["postgresql"].status == HealthStatus.UNHEALTHY:
            overall = HealthStatus.UNHEALTHY
        elif any(c.status != HealthStatus.HEALTHY for c in components.values()):
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return HealthCheckResponse(
            status=overall,
            version=self.settings.app_version,
            timestamp=_now_iso(),
            uptime_seconds=round(self.get_uptime_seconds(), 2),
            components=components,
        )

    async def liveness_check(self) -> Dict[str, Any]:
        return {"status": "alive", "timestamp": _now_iso()}

    async def readiness_check(self) -> Dict[str, Any]:
        postgres = await self.check_postgres()
        return {
            "status": "not_ready" if postgres.status == HealthStatus.UNHEALTHY else "ready",
            "timestamp": _now_iso(),
            "checks": {"postgresql": postgres.status.value},
        }


_health_checker: Optional[HealthChecker] = None


def get_health_checker() -> HealthChecker:
    global _health_checker
    if _health_checker is None:
        _health_checker = HealthChecker()
    return _health_checker
