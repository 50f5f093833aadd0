"""
Risk Assessor - additive risk scoring over a trailing window of entries.

Each factor is evaluated independently and contributes points plus a
human-readable reason. The raw sum picks the level; the reported score is
capped at 100. No entries means low risk: absence of data is not evidence.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from pulse.constants import RiskLevel, get_constants
from pulse.core.config import get_settings
from pulse.models.db_models import StandupEntry
from pulse.schemas.response_schemas import RiskAssessment
from pulse.services.calculations import round_half_up, safe_ratio, utc_now, local_today
from pulse.services.db_service import DatabaseService, get_db_service
from pulse.services.entry_service import get_entries
from pulse.services.sentiment_service import SentimentScorer, get_sentiment_scorer
from pulse.services.text_analysis import has_blocker, sentiment_text

logger = logging.getLogger(__name__)


class RiskAssessor:
    """Derives a risk level and contributing factors for one person."""

    def __init__(
        self,
        scorer: Optional[SentimentScorer] = None,
        db: Optional[DatabaseService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.scorer = scorer or get_sentiment_scorer()
        self.db = db or get_db_service()
        self.clock = clock
        self.settings = get_settings()
        self.config = get_constants().risk

    def assess_risk(self, person_id: str, window_days: Optional[int] = None) -> RiskAssessment:
        """Fetch the person's entries for the trailing window and assess them."""
        window_days = window_days or self.config.DEFAULT_WINDOW_DAYS
        today = local_today(self.clock(), self.settings.timezone)
        with self.db.get_session() as session:
            entries = get_entries(session, person_id, start=today - timedelta(days=window_days))
        return self.assess_entries(entries, window_days)

    def assess_entries(
        self,
        entries: Sequence[StandupEntry],
        window_days: int,
        sentiments: Optional[List[float]] = None,
    ) -> RiskAssessment:
        """
        Score an already fetched window.

        Args:
            entries: Entries in the window, most recent first
            window_days: Length of the window the entries were fetched for
            sentiments: Pre-computed scores for the most recent eligible
                entries, to avoid scoring the same text twice
        """
        cfg = self.config
        count = len(entries)
        if count == 0:
            return RiskAssessment(level=RiskLevel.LOW, factors=[], score=0)

        factors: List[str] = []
        raw_score = 0

        # Submission rate
        submission_rate = safe_ratio(count, window_days)
        if submission_rate < cfg.LOW_SUBMISSION_RATE:
            factors.append(f"Low submission rate ({round_half_up(submission_rate * 100)}%)")
            raw_score += cfg.LOW_SUBMISSION_POINTS
        elif submission_rate < cfg.INCONSISTENT_SUBMISSION_RATE:
            factors.append(f"Inconsistent submissions ({round_half_up(submission_rate * 100)}%)")
            raw_score += cfg.INCONSISTENT_SUBMISSION_POINTS

        # Blockers
        blocker_rate = safe_ratio(sum(1 for e in entries if has_blocker(e.blockers)), count)
        if blocker_rate > cfg.FREQUENT_BLOCKER_RATE:
            factors.append(f"Frequent blockers ({round_half_up(blocker_rate * 100)}% of days)")
            raw_score += cfg.FREQUENT_BLOCKER_POINTS
        elif blocker_rate > cfg.REGULAR_BLOCKER_RATE:
            factors.append(f"Regular blockers ({round_half_up(blocker_rate * 100)}% of days)")
            raw_score += cfg.REGULAR_BLOCKER_POINTS

        # Declining frequency: recent half vs older half of the entries
        midpoint = count // 2
        recent, older = entries[:midpoint], entries[midpoint:]
        if recent and older:
            half_window = window_days / 2
            recent_rate = safe_ratio(len(recent), half_window)
            older_rate = safe_ratio(len(older), half_window)
            if recent_rate < older_rate * cfg.DECLINING_FREQUENCY_RATIO:
                factors.append("Declining submission frequency")
                raw_score += cfg.DECLINING_FREQUENCY_POINTS

        # Sentiment
        if sentiments is None:
            sampled = [e for e in entries if e.sentiment_eligible][:cfg.SENTIMENT_SAMPLE_SIZE]
            sentiments = self.scorer.score_many(
                [sentiment_text(e) for e in sampled],
                max_workers=self.settings.sentiment_max_workers,
            )
        else:
            sentiments = sentiments[:cfg.SENTIMENT_SAMPLE_SIZE]
        if sentiments:
            avg_sentiment = sum(sentiments) / len(sentiments)
            if avg_sentiment < cfg.NEGATIVE_SENTIMENT_THRESHOLD:
                factors.append("Negative sentiment detected")
                raw_score += cfg.NEGATIVE_SENTIMENT_POINTS
            elif avg_sentiment < cfg.LOW_ENGAGEMENT_THRESHOLD:
                factors.append("Low engagement signals")
                raw_score += cfg.LOW_ENGAGEMENT_POINTS

        # Workload
        recent_hours = sum(e.total_hours for e in entries[:cfg.WORKLOAD_SAMPLE_SIZE])
        if recent_hours > cfg.HIGH_WORKLOAD_HOURS:
            factors.append(f"High workload ({recent_hours:g}h in last week)")
            raw_score += cfg.HIGH_WORKLOAD_POINTS

        if raw_score >= cfg.HIGH_LEVEL_SCORE:
            level = RiskLevel.HIGH
        elif raw_score >= cfg.MEDIUM_LEVEL_SCORE:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

        return RiskAssessment(level=level, factors=factors, score=min(cfg.MAX_REPORTED_SCORE, raw_score))
