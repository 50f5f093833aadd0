"""
API endpoints for standup entry submission and history.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from typing import List
import logging

from pulse.core.config import get_settings
from pulse.schemas.request_schemas import EntrySubmission
from pulse.schemas.response_schemas import EntryResponse
from pulse.services.achievement_service import AchievementEngine
from pulse.services.entry_service import EntryService
from pulse.routers.dependencies import get_entry_service, get_achievement_engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/entries", tags=["Entries"])


def _check_achievements(engine: AchievementEngine, person_id: str, workspace_id: str):
    awarded = engine.check_all_achievements(person_id, workspace_id)
    if awarded:
        logger.info(f"{len(awarded)} new badges for {person_id} after submission")


@router.post(
    "",
    response_model=EntryResponse,
    status_code=201,
    summary="Submit today's standup (re-submission overwrites)"
)
async def submit_entry(
    submission: EntrySubmission,
    background_tasks: BackgroundTasks,
    service: EntryService = Depends(get_entry_service),
    achievements: AchievementEngine = Depends(get_achievement_engine),
) -> EntryResponse:
    """Store a standup entry and evaluate badges for the submitter in the background."""
    entry = service.submit_entry(submission)
    workspace_id = submission.workspace_id or get_settings().default_workspace_id
    background_tasks.add_task(_check_achievements, achievements, entry.person_id, workspace_id)
    return EntryResponse.model_validate(entry)


@router.get(
    "/{person_id}",
    response_model=List[EntryResponse],
    summary="Recent entries for a person"
)
async def list_entries(
    person_id: str,
    days: int = Query(30, ge=1, le=365, description="Trailing days to include"),
    service: EntryService = Depends(get_entry_service),
) -> List[EntryResponse]:
    return [EntryResponse.model_validate(e) for e in service.list_entries(person_id, days)]
