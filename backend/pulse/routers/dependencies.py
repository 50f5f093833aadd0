"""
FastAPI dependencies that build the services for a request.

The roster cache is the process-wide instance created in main.py and kept on
app.state; every other collaborator falls back to its global default.
"""
from fastapi import Request, Depends

from pulse.core.cache import TTLCache
from pulse.services.achievement_service import AchievementEngine
from pulse.services.alert_service import AlertEngine
from pulse.services.batch_service import BatchService
from pulse.services.entry_service import EntryService
from pulse.services.metrics_service import MetricsCalculator
from pulse.services.risk_service import RiskAssessor
from pulse.services.roster_service import RosterService


def get_roster_cache(request: Request) -> TTLCache:
    return request.app.state.roster_cache


def get_roster_service(cache: TTLCache = Depends(get_roster_cache)) -> RosterService:
    return RosterService(cache)


def get_entry_service(cache: TTLCache = Depends(get_roster_cache)) -> EntryService:
    return EntryService(roster_cache=cache)


def get_metrics_calculator(roster: RosterService = Depends(get_roster_service)) -> MetricsCalculator:
    return MetricsCalculator(roster=roster)


def get_risk_assessor() -> RiskAssessor:
    return RiskAssessor()


def get_alert_engine() -> AlertEngine:
    return AlertEngine()


def get_achievement_engine() -> AchievementEngine:
    return AchievementEngine()


def get_batch_service(roster: RosterService = Depends(get_roster_service)) -> BatchService:
    return BatchService(roster=roster)
