"""
API endpoints for performance metrics and risk.

Live computations call the sentiment service, so they run in the worker
thread pool instead of blocking the event loop.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging

from pulse.constants import Period
from pulse.core.async_utils import run_in_thread
from pulse.core.config import get_settings
from pulse.schemas.response_schemas import MetricsRecord, RiskAssessment, TeamOverviewResponse
from pulse.services.metrics_service import MetricsCalculator
from pulse.services.risk_service import RiskAssessor
from pulse.routers.dependencies import get_metrics_calculator, get_risk_assessor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/performance", tags=["Performance"])


@router.get(
    "/team",
    response_model=TeamOverviewResponse,
    summary="Persisted team metrics for a period"
)
async def get_team_overview(
    period: Period = Query(Period.WEEK),
    workspace_id: Optional[str] = Query(None, max_length=64),
    calculator: MetricsCalculator = Depends(get_metrics_calculator),
) -> TeamOverviewResponse:
    workspace_id = workspace_id or get_settings().default_workspace_id
    return calculator.get_team_overview(workspace_id, period)


@router.get(
    "/{person_id}",
    response_model=Optional[MetricsRecord],
    summary="Compute metrics for the current period (null when there are no entries)"
)
async def get_person_metrics(
    person_id: str,
    period: Period = Query(Period.WEEK),
    workspace_id: Optional[str] = Query(None, max_length=64),
    calculator: MetricsCalculator = Depends(get_metrics_calculator),
) -> Optional[MetricsRecord]:
    return await run_in_thread(calculator.compute_metrics, person_id, period, workspace_id)


@router.get(
    "/{person_id}/history",
    response_model=List[MetricsRecord],
    summary="Persisted metrics for a person, most recent period first"
)
async def get_person_history(
    person_id: str,
    period: Period = Query(Period.WEEK),
    limit: int = Query(12, ge=1, le=100),
    calculator: MetricsCalculator = Depends(get_metrics_calculator),
) -> List[MetricsRecord]:
    return calculator.get_metrics_history(person_id, period, limit)


@router.get(
    "/{person_id}/risk",
    response_model=RiskAssessment,
    summary="Risk level and contributing factors over a trailing window"
)
async def get_person_risk(
    person_id: str,
    days: int = Query(30, ge=1, le=365),
    assessor: RiskAssessor = Depends(get_risk_assessor),
) -> RiskAssessment:
    return await run_in_thread(assessor.assess_risk, person_id, days)
