"""
Standup Pulse API.

Serves standup submission, performance, alert and achievement endpoints and
runs the three nightly batch passes (metrics, alert checks, achievements) on
APScheduler cron triggers in the configured timezone. Startup only fails when
PostgreSQL cannot be reached; a missing sentiment key or a scheduler problem
starts the service in degraded mode.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from slowapi.middleware import SlowAPIMiddleware

from pulse.core.config import get_settings
from pulse.core.cache import TTLCache
from pulse.core.exceptions import register_exception_handlers
from pulse.core.health import get_health_checker, HealthCheckResponse
from pulse.core.logging import setup_logging, LoggingMiddleware
from pulse.core.rate_limiting import limiter
from pulse.core.resilience import resilient_startup, get_all_circuit_breaker_stats
from pulse.core.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from pulse.core.async_utils import shutdown_thread_pool
from pulse.routers import entries, performance, alerts, achievements, batch
from pulse.schemas.response_schemas import HealthResponse
from pulse.services.db_service import get_db_service
from pulse.services.batch_service import BatchService
from pulse.services.roster_service import RosterService
from pulse.services.sentiment_service import get_sentiment_scorer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Fail fast on missing or unsafe configuration
try:
    settings = get_settings()
except Exception as e:
    logger.critical(f"Invalid configuration: {e}")
    logger.critical("Check the environment variables or the .env file.")
    raise SystemExit(1)

setup_logging(debug=settings.debug, log_level="DEBUG" if settings.debug else "INFO")
logger.info(settings.log_config_summary())

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Standup analytics: performance scores, risk, alerts and achievements",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

roster_cache = TTLCache(ttl_seconds=settings.roster_cache_ttl_seconds)
app.state.roster_cache = roster_cache
app.state.limiter = limiter

scheduler = AsyncIOScheduler(timezone=settings.timezone)
get_health_checker().configure(scheduler=scheduler, roster_cache=roster_cache)

# Added last runs first: logging wraps CORS, rate limiting and metrics
app.add_middleware(PrometheusMiddleware)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

for module in (entries, performance, alerts, achievements, batch):
    app.include_router(module.router, prefix=settings.api_prefix)


# =============================================================================
# Service and monitoring endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    return HealthResponse(status="operational", version=settings.app_version)


@app.get("/health", summary="Liveness probe")
async def health_liveness():
    return await get_health_checker().liveness_check()


@app.get("/health/ready", summary="Readiness probe: 503 until PostgreSQL answers")
async def health_readiness():
    result = await get_health_checker().readiness_check()
    if result["status"] != "ready":
        return JSONResponse(status_code=503, content=result)
    return result


@app.get("/health/full", response_model=HealthCheckResponse, summary="Status of every component")
async def health_full() -> HealthCheckResponse:
    return await get_health_checker().check_all()


@app.get("/metrics", include_in_schema=False)
async def get_metrics(request: Request):
    return await metrics_endpoint(request)


@app.get("/circuit-breakers", tags=["Monitoring"])
async def get_circuit_breakers():
    return get_all_circuit_breaker_stats()


@app.get("/cache/stats", tags=["Monitoring"])
async def get_cache_stats():
    return roster_cache.get_stats()


@app.post("/cache/clear", tags=["Monitoring"])
async def clear_cache():
    """Drop every cached roster; the next batch pass reloads from the entries table."""
    roster_cache.clear()
    return {"status": "cleared", "message": "Roster cache invalidated"}


# =============================================================================
# Scheduled batch passes
# =============================================================================

# (job, settings field holding the cron expression, BatchService method)
SCHEDULED_JOBS = (
    ("metrics", "metrics_cron", "run_metrics_pass"),
    ("alerts", "alert_checks_cron", "run_alert_pass"),
    ("achievements", "achievements_cron", "run_achievement_pass"),
)


def run_scheduled_pass(job: str, method: str):
    """Scheduler entry point. A failing pass is logged and the next run still fires."""
    try:
        service = BatchService(roster=RosterService(roster_cache))
        summary = getattr(service, method)(settings.default_workspace_id)
    except Exception as e:
        logger.error(f"Scheduled {job} pass failed: {e}", exc_info=True)
        return
    logger.info(f"Scheduled {job} pass: {summary.processed} processed, {summary.failed} failed")


def schedule_batch_jobs():
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false); use the /api/batch endpoints")
        return

    for job, cron_field, method in SCHEDULED_JOBS:
        expression = getattr(settings, cron_field)
        scheduler.add_job(
            run_scheduled_pass,
            trigger=CronTrigger.from_crontab(expression, timezone=settings.timezone),
            args=(job, method),
            id=f"{job}_pass",
            name=f"{job} pass",
            replace_existing=True,
        )
        logger.info(f"Scheduled {job} pass at '{expression}' ({settings.app_timezone})")
    scheduler.start()


def init_database():
    db_service = get_db_service()
    if not db_service.initialize():
        raise RuntimeError("Database initialization failed")
    for table, exists in db_service.check_tables_exist().items():
        logger.info(f"  {table}: {db_service.get_table_row_count(table) if exists else 'missing'} rows")


def check_sentiment():
    if not get_sentiment_scorer().available:
        raise RuntimeError("SENTIMENT_API_KEY not set; sentiment scores will be neutral")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    set_app_info(version=settings.app_version, environment="development" if settings.debug else "production")

    database = resilient_startup("PostgreSQL", init_database, critical=True, max_attempts=5, wait_seconds=3)
    if not database.success:
        raise RuntimeError(f"Database initialization failed: {database.error}")

    results = [
        database,
        resilient_startup("Sentiment scorer", check_sentiment, critical=False, max_attempts=1, wait_seconds=0),
        resilient_startup("Scheduler", schedule_batch_jobs, critical=False, max_attempts=2, wait_seconds=2),
    ]

    degraded = [r for r in results if not r.success]
    for result in degraded:
        logger.warning(f"  [DEGRADED] {result.name}: {result.error}")
    if degraded:
        logger.warning(f"Started in DEGRADED mode ({len(degraded)} non-critical failures)")
    else:
        logger.info(f"Started; API at http://{settings.host}:{settings.port}")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=True)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.app_name}")
    steps = (
        ("scheduler", stop_scheduler),
        ("worker pool", shutdown_thread_pool),
        ("database", get_db_service().close),
    )
    for name, step in steps:
        try:
            step()
        except Exception as e:
            logger.error(f"Error shutting down {name}: {e}")
    logger.info("Shutdown complete")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("pulse.main:app", host=settings.host, port=settings.port, reload=settings.debug)
