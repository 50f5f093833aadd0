"""
Response schemas for the Standup Pulse API

MetricsRecord and RiskAssessment are also the in-memory results passed between
the analytics services before anything is persisted.
"""
from pydantic import BaseModel, ConfigDict
from typing import List, Optional, Dict
from datetime import date, datetime

from pulse.constants import (
    Period, VelocityTrend, SentimentTrend, RiskLevel, Severity, AlertType, AlertStatus,
    AchievementType, BadgeLevel,
)


class EntryResponse(BaseModel):
    """A stored standup entry"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: str
    person_id: str
    person_name: str
    entry_date: date
    yesterday: str = ""
    today: str = ""
    blockers: str = ""
    notes: str = ""
    yesterday_hours_estimate: Optional[float] = None
    today_hours_estimate: Optional[float] = None
    sentiment_eligible: bool = True
    submitted_at: datetime


class RiskAssessment(BaseModel):
    """Risk level with the factors that produced it"""
    level: RiskLevel = RiskLevel.LOW
    factors: List[str] = []
    score: int = 0


class MetricsRecord(BaseModel):
    """Aggregated scores for one person over one period"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    person_id: str
    person_name: str
    workspace_id: str
    period: Period
    start_date: date
    end_date: date

    total_submissions: int = 0
    expected_submissions: int = 0
    consistency_score: int = 0

    total_tasks: int = 0
    total_hours_estimated: int = 0
    average_tasks_per_day: float = 0.0
    velocity_trend: VelocityTrend = VelocityTrend.STABLE

    blocker_count: int = 0
    blocker_frequency: int = 0
    recurring_blockers: List[str] = []

    engagement_score: int = 0
    average_submission_time: str = "00:00"
    late_submissions: int = 0

    sentiment_score: float = 0.0
    sentiment_trend: SentimentTrend = SentimentTrend.STABLE
    risk_level: RiskLevel = RiskLevel.LOW
    risk_factors: List[str] = []
    risk_score: int = 0

    overall_score: int = 0

    # Filled in by the team aggregation pass
    team_average_score: Optional[int] = None
    percentile_rank: Optional[int] = None


class TeamOverviewResponse(BaseModel):
    """Persisted metrics for every person in a workspace for one period"""
    workspace_id: str
    period: Period
    start_date: Optional[date] = None
    team_average_score: Optional[int] = None
    members: List[MetricsRecord] = []


class AlertResponse(BaseModel):
    """An alert as shown to dashboards and the bot"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: str
    alert_type: AlertType
    severity: Severity
    title: str
    description: str
    person_id: str
    person_name: str
    metric: Optional[str] = None
    current_value: Optional[float] = None
    threshold: Optional[float] = None
    related_entry_ids: List[int] = []
    suggested_actions: List[str] = []
    status: AlertStatus
    resolution: Optional[str] = None
    is_recurring: bool = False
    occurrence_count: int = 1
    priority: int
    created_at: datetime
    last_occurrence: datetime
    expires_at: datetime


class AchievementResponse(BaseModel):
    """An earned badge"""
    model_config = ConfigDict(from_attributes=True)

    person_id: str
    person_name: str
    achievement_type: AchievementType
    badge_name: str
    badge_icon: str
    description: str
    level: BadgeLevel
    threshold: float
    earned_at: datetime


class StreakInfo(BaseModel):
    """Submission streak figures over the trailing year"""
    current: int = 0
    longest: int = 0
    total: int = 0


class UserBadgesResponse(BaseModel):
    person_id: str
    streak: StreakInfo
    badges: List[AchievementResponse] = []


class LeaderboardEntry(BaseModel):
    person_id: str
    person_name: str
    points: int = 0
    badges: int = 0


class BatchRunSummary(BaseModel):
    """Outcome of one batch pass. Failed units are counted, never raised."""
    job: str
    run_id: str
    workspace_id: str
    processed: int = 0
    failed: int = 0
    details: Dict[str, int] = {}


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
