"""
Manual triggers for the scheduled batch passes.

These run the same code as the cron jobs and are rate-limited separately
(RATE_LIMIT_BATCH_REQUESTS per RATE_LIMIT_BATCH_WINDOW). The pass runs in the
worker thread pool; the response is the run summary.
"""
from fastapi import APIRouter, Depends, Query, Request, Response
from typing import Optional
import logging

from pulse.core.async_utils import run_in_thread
from pulse.core.exceptions import AppException, BatchException
from pulse.core.rate_limiting import limiter, get_batch_rate_limit
from pulse.schemas.response_schemas import BatchRunSummary
from pulse.services.batch_service import BatchService
from pulse.routers.dependencies import get_batch_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/batch", tags=["Batch"])


async def _run(job: str, func, *args) -> BatchRunSummary:
    logger.info(f"Manual {job} pass triggered")
    try:
        return await run_in_thread(func, *args)
    except AppException:
        raise
    except Exception as e:
        logger.error(f"Manual {job} pass failed: {e}")
        raise BatchException(f"{job.capitalize()} pass failed", detail=str(e), job=job)


@router.post("/metrics", response_model=BatchRunSummary, summary="Run the metrics pass now")
@limiter.limit(get_batch_rate_limit)
async def trigger_metrics(
    request: Request,
    response: Response,
    workspace_id: Optional[str] = Query(None, max_length=64),
    service: BatchService = Depends(get_batch_service),
) -> BatchRunSummary:
    return await _run("metrics", service.run_metrics_pass, workspace_id)


@router.post("/alerts", response_model=BatchRunSummary, summary="Run all alert detectors and the expiry sweep now")
@limiter.limit(get_batch_rate_limit)
async def trigger_alerts(
    request: Request,
    response: Response,
    workspace_id: Optional[str] = Query(None, max_length=64),
    service: BatchService = Depends(get_batch_service),
) -> BatchRunSummary:
    return await _run("alerts", service.run_alert_pass, workspace_id)


@router.post("/achievements", response_model=BatchRunSummary, summary="Evaluate badges for the whole roster now")
@limiter.limit(get_batch_rate_limit)
async def trigger_achievements(
    request: Request,
    response: Response,
    workspace_id: Optional[str] = Query(None, max_length=64),
    service: BatchService = Depends(get_batch_service),
) -> BatchRunSummary:
    return await _run("achievements", service.run_achievement_pass, workspace_id)
