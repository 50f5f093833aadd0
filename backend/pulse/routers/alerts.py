"""
API endpoints for alert listing and operator dismissal.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging

from pulse.constants import AlertStatus
from pulse.core.config import get_settings
from pulse.schemas.request_schemas import DismissAlertRequest
from pulse.schemas.response_schemas import AlertResponse
from pulse.services.alert_service import AlertEngine
from pulse.routers.dependencies import get_alert_engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get(
    "",
    response_model=List[AlertResponse],
    summary="Alerts by priority, then most recent occurrence"
)
async def list_alerts(
    workspace_id: Optional[str] = Query(None, max_length=64),
    status: AlertStatus = Query(AlertStatus.ACTIVE),
    person_id: Optional[str] = Query(None, max_length=64),
    limit: int = Query(100, ge=1, le=500),
    engine: AlertEngine = Depends(get_alert_engine),
) -> List[AlertResponse]:
    workspace_id = workspace_id or get_settings().default_workspace_id
    alerts = engine.list_alerts(workspace_id, status=status, person_id=person_id, limit=limit)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.post(
    "/{alert_id}/dismiss",
    response_model=AlertResponse,
    summary="Dismiss an alert"
)
async def dismiss_alert(
    alert_id: int,
    body: Optional[DismissAlertRequest] = None,
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertResponse:
    resolution = body.resolution if body else None
    return AlertResponse.model_validate(engine.dismiss_alert(alert_id, resolution))
