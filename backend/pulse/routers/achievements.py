"""
API endpoints for badges, streaks and the leaderboard.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from pulse.core.config import get_settings
from pulse.schemas.response_schemas import AchievementResponse, LeaderboardEntry, UserBadgesResponse
from pulse.services.achievement_service import AchievementEngine
from pulse.routers.dependencies import get_achievement_engine

router = APIRouter(prefix="/achievements", tags=["Achievements"])


@router.get(
    "/leaderboard",
    response_model=List[LeaderboardEntry],
    summary="Badge points per person, highest first"
)
async def get_leaderboard(
    workspace_id: Optional[str] = Query(None, max_length=64),
    engine: AchievementEngine = Depends(get_achievement_engine),
) -> List[LeaderboardEntry]:
    return engine.get_leaderboard(workspace_id or get_settings().default_workspace_id)


@router.get(
    "/{person_id}",
    response_model=UserBadgesResponse,
    summary="A person's badges and streak"
)
async def get_user_badges(
    person_id: str,
    engine: AchievementEngine = Depends(get_achievement_engine),
) -> UserBadgesResponse:
    return UserBadgesResponse(
        person_id=person_id,
        streak=engine.get_user_streak(person_id),
        badges=[AchievementResponse.model_validate(a) for a in engine.get_user_badges(person_id)],
    )
