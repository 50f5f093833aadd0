"""
Metrics Calculator - per-person period scores from raw standup entries

Features:
- Consistency, task velocity and trend, blocker figures, timing and sentiment
- Engagement and overall scores from named constants
- Risk assessed over a fixed trailing window, reusing the fetched entries
- Team pass: compute every roster person, aggregate, upsert by natural key
- Reads of persisted history and team overviews

Each record is recomputed from scratch; the same entry window always yields
the same record.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, func

from pulse.constants import Period, VelocityTrend, SentimentTrend, get_constants
from pulse.core.config import get_settings
from pulse.core.metrics import record_unit_failure
from pulse.models.db_models import PerformanceMetric, StandupEntry
from pulse.schemas.response_schemas import MetricsRecord, RiskAssessment, TeamOverviewResponse
from pulse.services.calculations import (
    round_half_up, safe_ratio, utc_now, to_naive_utc, local_today, to_local,
    minutes_since_midnight, format_minutes, period_window,
)
from pulse.services.db_service import DatabaseService, get_db_service, upsert
from pulse.services.entry_service import get_entries, distinct_person_ids
from pulse.services.risk_service import RiskAssessor
from pulse.services.roster_service import RosterService
from pulse.services.sentiment_service import SentimentScorer, get_sentiment_scorer
from pulse.services.team_aggregator import aggregate
from pulse.services.text_analysis import (
    TaskExtractor, RecurringKeywordStrategy, extract_tasks, count_entry_tasks, has_blocker,
    sentiment_text, get_keyword_strategy,
)

logger = logging.getLogger(__name__)

METRIC_KEY_COLUMNS = ("person_id", "period", "start_date")


@dataclass
class TeamMetricsRun:
    """Outcome of one team pass"""
    records: List[MetricsRecord] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0


class MetricsCalculator:
    """Turns a person's entries for a period into one MetricsRecord."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        scorer: Optional[SentimentScorer] = None,
        risk_assessor: Optional[RiskAssessor] = None,
        roster: Optional[RosterService] = None,
        clock: Callable[[], datetime] = utc_now,
        task_extractor: TaskExtractor = extract_tasks,
        keyword_strategy: Optional[RecurringKeywordStrategy] = None,
    ):
        self.db = db or get_db_service()
        self.scorer = scorer or get_sentiment_scorer()
        self.risk_assessor = risk_assessor or RiskAssessor(scorer=self.scorer, db=self.db, clock=clock)
        self.roster = roster
        self.clock = clock
        self.task_extractor = task_extractor
        self.keyword_strategy = keyword_strategy or get_keyword_strategy()
        self.settings = get_settings()
        self.constants = get_constants()

    # =========================================================================
    # Single person
    # =========================================================================

    def compute_metrics(
        self,
        person_id: str,
        period: Period,
        workspace_id: Optional[str] = None,
    ) -> Optional[MetricsRecord]:
        """
        Compute the record for the period containing today.

        Returns:
            The record, or None when the person has no entries in the window
        """
        period = Period(period)
        scoring = self.constants.scoring
        today = local_today(self.clock(), self.settings.timezone)
        start, end = period_window(period, today, self.settings.week_start_day)
        risk_start = today - timedelta(days=scoring.RISK_WINDOW_DAYS)

        with self.db.get_session() as session:
            entries = get_entries(session, person_id, start=start, end=end)
            if not entries:
                return None
            risk_entries = get_entries(session, person_id, start=risk_start, end=today)

        sampled = self._eligible(entries, scoring.SENTIMENT_SAMPLE_SIZE)
        risk_sampled = self._eligible(risk_entries, self.constants.risk.SENTIMENT_SAMPLE_SIZE)
        scores = self._score_sentiments(sampled + risk_sampled)

        risk = self.risk_assessor.assess_entries(
            risk_entries,
            scoring.RISK_WINDOW_DAYS,
            sentiments=[scores[e.id] for e in risk_sampled],
        )

        return self.build_record(
            person_id=person_id,
            person_name=entries[0].person_name,
            workspace_id=workspace_id or entries[0].workspace_id,
            period=period,
            start=start,
            end=end,
            entries=entries,
            sentiments=[scores[e.id] for e in sampled],
            risk=risk,
        )

    @staticmethod
    def _eligible(entries: Sequence[StandupEntry], limit: int) -> List[StandupEntry]:
        return [e for e in entries if e.sentiment_eligible][:limit]

    def _score_sentiments(self, entries: Sequence[StandupEntry]) -> Dict[int, float]:
        """Score each distinct entry once; order of the input is kept for the calls."""
        unique = list({e.id: e for e in entries}.values())
        values = self.scorer.score_many(
            [sentiment_text(e) for e in unique],
            max_workers=self.settings.sentiment_max_workers,
        )
        return {e.id: value for e, value in zip(unique, values)}

    def build_record(
        self,
        person_id: str,
        person_name: str,
        workspace_id: str,
        period: Period,
        start: date,
        end: date,
        entries: Sequence[StandupEntry],
        sentiments: Sequence[float],
        risk: RiskAssessment,
    ) -> Optional[MetricsRecord]:
        """
        Pure scoring over an already fetched window.

        Args:
            entries: Entries in the period, most recent first
            sentiments: Scores for the most recent sentiment-eligible entries
            risk: Assessment over the trailing risk window
        """
        if not entries:
            return None

        scoring = self.constants.scoring
        submissions = len(entries)
        expected = self.constants.periods.expected_for(period)

        consistency = min(
            self.constants.periods.CONSISTENCY_CAP,
            round_half_up(safe_ratio(submissions, expected) * 100),
        )

        # Velocity
        task_counts = [count_entry_tasks(e, self.task_extractor) for e in entries]
        total_tasks = sum(task_counts)
        velocity_trend = self._velocity_trend(task_counts)
        total_hours = sum(e.total_hours for e in entries)

        # Blockers
        blocker_count = sum(1 for e in entries if has_blocker(e.blockers))
        blocker_frequency = round_half_up(safe_ratio(blocker_count, submissions) * 100)
        recurring = self.keyword_strategy.find([e.blockers or "" for e in entries])

        # Timing
        tz = self.settings.timezone
        minutes = [minutes_since_midnight(to_local(e.submitted_at, tz)) for e in entries]
        late_submissions = sum(1 for m in minutes if m > scoring.LATE_AFTER_MINUTES)
        average_time = format_minutes(safe_ratio(sum(minutes), len(minutes)))

        # Sentiment
        sentiment = round_half_up(safe_ratio(sum(sentiments), len(sentiments)), 2) if sentiments else 0.0
        if sentiment > scoring.SENTIMENT_TREND_THRESHOLD:
            sentiment_trend = SentimentTrend.IMPROVING
        elif sentiment < -scoring.SENTIMENT_TREND_THRESHOLD:
            sentiment_trend = SentimentTrend.DECLINING
        else:
            sentiment_trend = SentimentTrend.STABLE

        engagement = round_half_up(
            min(scoring.ENGAGEMENT_CONSISTENCY_CAP, consistency * scoring.ENGAGEMENT_CONSISTENCY_WEIGHT)
            + min(scoring.ENGAGEMENT_SENTIMENT_CAP, (sentiment + 1) * scoring.ENGAGEMENT_SENTIMENT_MULTIPLIER)
            + (scoring.ENGAGEMENT_LOW_BLOCKER_POINTS
               if blocker_frequency < scoring.ENGAGEMENT_BLOCKER_FREQUENCY_THRESHOLD
               else scoring.ENGAGEMENT_HIGH_BLOCKER_POINTS)
            + (scoring.ENGAGEMENT_TIMELY_POINTS
               if late_submissions < submissions * scoring.ENGAGEMENT_LATE_RATIO_THRESHOLD
               else scoring.ENGAGEMENT_LATE_POINTS)
        )

        overall = round_half_up(
            min(scoring.OVERALL_CONSISTENCY_CAP, consistency * scoring.OVERALL_CONSISTENCY_WEIGHT)
            + min(scoring.OVERALL_ENGAGEMENT_CAP, engagement * scoring.OVERALL_ENGAGEMENT_WEIGHT)
            + scoring.VELOCITY_BAND_POINTS[velocity_trend]
            + scoring.RISK_BAND_POINTS[risk.level]
        )

        return MetricsRecord(
            person_id=person_id,
            person_name=person_name,
            workspace_id=workspace_id,
            period=period,
            start_date=start,
            end_date=end,
            total_submissions=submissions,
            expected_submissions=expected,
            consistency_score=consistency,
            total_tasks=total_tasks,
            total_hours_estimated=round_half_up(total_hours),
            average_tasks_per_day=round_half_up(safe_ratio(total_tasks, submissions), 1),
            velocity_trend=velocity_trend,
            blocker_count=blocker_count,
            blocker_frequency=blocker_frequency,
            recurring_blockers=recurring,
            engagement_score=engagement,
            average_submission_time=average_time,
            late_submissions=late_submissions,
            sentiment_score=sentiment,
            sentiment_trend=sentiment_trend,
            risk_level=risk.level,
            risk_factors=list(risk.factors),
            risk_score=risk.score,
            overall_score=overall,
        )

    def _velocity_trend(self, task_counts: Sequence[int]) -> VelocityTrend:
        """Compare average tasks of the recent half against the older half."""
        scoring = self.constants.scoring
        if len(task_counts) < scoring.VELOCITY_TREND_MIN_ENTRIES:
            return VelocityTrend.STABLE

        midpoint = len(task_counts) // 2
        recent, older = task_counts[:midpoint], task_counts[midpoint:]
        recent_avg = safe_ratio(sum(recent), len(recent))
        older_avg = safe_ratio(sum(older), len(older))
        change = (recent_avg - older_avg) / max(scoring.VELOCITY_OLDER_AVG_FLOOR, older_avg) * 100

        if change > scoring.VELOCITY_TREND_CHANGE_PERCENT:
            return VelocityTrend.INCREASING
        if change < -scoring.VELOCITY_TREND_CHANGE_PERCENT:
            return VelocityTrend.DECREASING
        return VelocityTrend.STABLE

    # =========================================================================
    # Team pass
    # =========================================================================

    def _team_members(self, workspace_id: str) -> List[str]:
        if self.roster is not None:
            return self.roster.get_roster(workspace_id)
        with self.db.get_session() as session:
            return distinct_person_ids(session, workspace_id)

    def compute_team_metrics(self, workspace_id: str, period: Period) -> TeamMetricsRun:
        """
        Compute, aggregate and persist records for every person in the workspace.

        A failure for one person is logged and counted; the rest of the team
        is still computed and written.
        """
        period = Period(period)
        run = TeamMetricsRun()

        for person_id in self._team_members(workspace_id):
            try:
                record = self.compute_metrics(person_id, period, workspace_id)
            except Exception as e:
                run.failed += 1
                record_unit_failure("metrics", "person")
                logger.error(
                    f"Metrics computation failed for {person_id}: {e}",
                    extra={"person_id": person_id, "workspace_id": workspace_id, "period": period.value},
                )
                continue
            if record is None:
                run.skipped += 1
                continue
            run.records.append(record)

        run.records = aggregate(run.records)

        computed_at = to_naive_utc(self.clock())
        persisted = []
        for record in run.records:
            try:
                self.save_record(record, computed_at)
                persisted.append(record)
            except Exception as e:
                run.failed += 1
                record_unit_failure("metrics", "persist")
                logger.error(
                    f"Failed to persist metrics for {record.person_id}: {e}",
                    extra={"person_id": record.person_id, "workspace_id": workspace_id, "period": period.value},
                )
        run.records = persisted

        logger.info(
            f"Team metrics for {workspace_id} ({period.value}): "
            f"{len(run.records)} saved, {run.skipped} without data, {run.failed} failed",
            extra={"workspace_id": workspace_id, "period": period.value},
        )
        return run

    def save_record(self, record: MetricsRecord, computed_at: Optional[datetime] = None):
        """Upsert one record by (person, period, period start), overwriting every score."""
        values = record.model_dump()
        values["computed_at"] = computed_at or to_naive_utc(self.clock())
        update_columns = [c for c in values if c not in METRIC_KEY_COLUMNS]
        with self.db.get_session() as session:
            upsert(session, PerformanceMetric, values, METRIC_KEY_COLUMNS, update_columns)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_metrics_history(self, person_id: str, period: Period, limit: int = 12) -> List[MetricsRecord]:
        """Persisted records for a person, most recent period first."""
        with self.db.get_session() as session:
            rows = session.execute(
                select(PerformanceMetric)
                .where(PerformanceMetric.person_id == person_id, PerformanceMetric.period == Period(period).value)
                .order_by(PerformanceMetric.start_date.desc())
                .limit(limit)
            ).scalars()
            return [MetricsRecord.model_validate(row) for row in rows]

    def get_team_overview(
        self,
        workspace_id: str,
        period: Period,
        start_date: Optional[date] = None,
    ) -> TeamOverviewResponse:
        """Persisted team records for one period start (the latest one by default)."""
        period = Period(period)
        with self.db.get_session() as session:
            if start_date is None:
                start_date = session.execute(
                    select(func.max(PerformanceMetric.start_date)).where(
                        PerformanceMetric.workspace_id == workspace_id,
                        PerformanceMetric.period == period.value,
                    )
                ).scalar()
            if start_date is None:
                return TeamOverviewResponse(workspace_id=workspace_id, period=period)

            rows = session.execute(
                select(PerformanceMetric)
                .where(
                    PerformanceMetric.workspace_id == workspace_id,
                    PerformanceMetric.period == period.value,
                    PerformanceMetric.start_date == start_date,
                )
                .order_by(PerformanceMetric.overall_score.desc(), PerformanceMetric.person_id)
            ).scalars()
            members = [MetricsRecord.model_validate(row) for row in rows]

        return TeamOverviewResponse(
            workspace_id=workspace_id,
            period=period,
            start_date=start_date,
            team_average_score=members[0].team_average_score if members else None,
            members=members,
        )
