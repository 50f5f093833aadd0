"""
SQLAlchemy database models for Standup Pulse

Four collections, each with the natural unique key its upserts rely on.
Timestamps are stored as naive UTC.
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, Date, Boolean, JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StandupEntry(Base):
    """One daily status report per person per calendar day"""
    __tablename__ = 'standup_entry'
    __table_args__ = (
        UniqueConstraint('person_id', 'entry_date', name='uq_standup_entry_person_date'),
        Index('ix_standup_entry_workspace_date', 'workspace_id', 'entry_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    person_id = Column(String(64), nullable=False, index=True)
    person_name = Column(String(255), nullable=False)
    entry_date = Column(Date, nullable=False, index=True)
    yesterday = Column(Text, nullable=False, default='')
    today = Column(Text, nullable=False, default='')
    blockers = Column(Text, nullable=False, default='')
    notes = Column(Text, nullable=False, default='')
    yesterday_hours_estimate = Column(Float)
    today_hours_estimate = Column(Float)
    sentiment_eligible = Column(Boolean, nullable=False, default=True)
    source = Column(String(20), nullable=False, default='api')
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def total_hours(self) -> float:
        return (self.yesterday_hours_estimate or 0) + (self.today_hours_estimate or 0)


class PerformanceMetric(Base):
    """Aggregated scores for one person over one period"""
    __tablename__ = 'performance_metric'
    __table_args__ = (
        UniqueConstraint('person_id', 'period', 'start_date', name='uq_performance_metric_person_period_start'),
        Index('ix_performance_metric_workspace_period', 'workspace_id', 'period', 'start_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    person_id = Column(String(64), nullable=False, index=True)
    person_name = Column(String(255), nullable=False)
    period = Column(String(10), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Submissions
    total_submissions = Column(Integer, nullable=False, default=0)
    expected_submissions = Column(Integer, nullable=False, default=0)
    consistency_score = Column(Integer, nullable=False, default=0)

    # Velocity
    total_tasks = Column(Integer, nullable=False, default=0)
    total_hours_estimated = Column(Integer, nullable=False, default=0)
    average_tasks_per_day = Column(Float, nullable=False, default=0)
    velocity_trend = Column(String(20), nullable=False, default='stable')

    # Blockers
    blocker_count = Column(Integer, nullable=False, default=0)
    blocker_frequency = Column(Integer, nullable=False, default=0)
    recurring_blockers = Column(JSON, nullable=False, default=list)

    # Engagement and timing
    engagement_score = Column(Integer, nullable=False, default=0)
    average_submission_time = Column(String(5), nullable=False, default='00:00')
    late_submissions = Column(Integer, nullable=False, default=0)

    # Sentiment and risk
    sentiment_score = Column(Float, nullable=False, default=0)
    sentiment_trend = Column(String(20), nullable=False, default='stable')
    risk_level = Column(String(10), nullable=False, default='low')
    risk_factors = Column(JSON, nullable=False, default=list)
    risk_score = Column(Integer, nullable=False, default=0)

    # Scores
    overall_score = Column(Integer, nullable=False, default=0)
    team_average_score = Column(Integer)
    percentile_rank = Column(Integer)

    computed_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Alert(Base):
    """A detected problem for one person"""
    __tablename__ = 'alert'
    __table_args__ = (
        Index('ix_alert_dedup', 'workspace_id', 'alert_type', 'person_id', 'status'),
        Index('ix_alert_status_expires', 'status', 'expires_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False)
    alert_type = Column(String(40), nullable=False)
    severity = Column(String(10), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    person_id = Column(String(64), nullable=False)
    person_name = Column(String(255), nullable=False)
    metric = Column(String(64))
    current_value = Column(Float)
    threshold = Column(Float)
    related_entry_ids = Column(JSON, nullable=False, default=list)
    suggested_actions = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default='active')
    resolution = Column(Text)
    resolved_at = Column(DateTime)
    is_recurring = Column(Boolean, nullable=False, default=False)
    occurrence_count = Column(Integer, nullable=False, default=1)
    priority = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_occurrence = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)


class Achievement(Base):
    """An earned badge, one per (person, type, level)"""
    __tablename__ = 'achievement'
    __table_args__ = (
        UniqueConstraint('person_id', 'achievement_type', 'level', name='uq_achievement_person_type_level'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    person_id = Column(String(64), nullable=False, index=True)
    person_name = Column(String(255), nullable=False)
    achievement_type = Column(String(20), nullable=False)
    badge_name = Column(String(100), nullable=False)
    badge_icon = Column(String(32), nullable=False)
    description = Column(String(255), nullable=False)
    level = Column(String(10), nullable=False)
    threshold = Column(Float, nullable=False)
    earned_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
