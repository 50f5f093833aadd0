"""
Centralized constants and scoring rules for Standup Pulse.

Every weight, band and threshold used by the analytics passes lives here as a
frozen dataclass. They are not settings: two runs over the same
entries must score identically, and tests assert the exact values.

Categories:
1. Enumerations - Period, trend, severity, alert and badge vocabularies
2. Period Configuration - Expected submission baselines per period
3. Text Analysis - Task markers, blocker sentinels, keyword extraction
4. Metrics Scoring - Velocity, timing, sentiment, engagement and overall score
5. Risk Scoring - Additive risk factors and level bands
6. Alert Configuration - Dedup, expiry, priorities, detector thresholds, templates
7. Achievement Configuration - Badge catalog, rule windows, leaderboard points
"""

from enum import Enum
from typing import Dict, Tuple, FrozenSet
from dataclasses import dataclass, field
from functools import lru_cache


# =============================================================================
# 1. ENUMERATIONS
# =============================================================================

class Period(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


class VelocityTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class SentimentTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, Enum):
    DECLINING_PERFORMANCE = "declining_performance"
    NO_RECENT_SUBMISSIONS = "no_recent_submissions"
    REPEATED_BLOCKERS = "repeated_blockers"
    SENTIMENT_RISK = "sentiment_risk"
    OVERWORK = "overwork"
    UNDERUTILIZATION = "underutilization"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    DISMISSED = "dismissed"


class AchievementType(str, Enum):
    STREAK = "streak"
    VELOCITY = "velocity"
    EARLY_BIRD = "early_bird"
    CONSISTENCY = "consistency"


class BadgeLevel(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# =============================================================================
# 2. PERIOD CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class PeriodConfig:
    """Expected submission baselines and window shapes for each period."""

    # Working days expected per period (week = weekdays, month/quarter approximate)
    EXPECTED_SUBMISSIONS: Dict[Period, int] = field(default_factory=lambda: {
        Period.WEEK: 5,
        Period.MONTH: 22,
        Period.QUARTER: 65,
    })

    # Quarter is a trailing window ending today, not a calendar quarter
    QUARTER_LOOKBACK_DAYS: int = 90

    # Consistency score never reports above this, even with weekend submissions
    CONSISTENCY_CAP: int = 100

    def expected_for(self, period: Period) -> int:
        return self.EXPECTED_SUBMISSIONS.get(Period(period), 0)


# =============================================================================
# 3. TEXT ANALYSIS
# =============================================================================

@dataclass(frozen=True)
class TextAnalysisConfig:
    """Task counting, blocker detection and recurring keyword extraction."""

    # A line is a task when it starts with a bullet or "1." style number
    TASK_LINE_PATTERN: str = r"^\s*(?:[•\-–*]|\d+\.)\s*(.*\S)"

    # Blocker texts that mean "no blocker", compared lower-cased and stripped
    BLOCKER_SENTINELS: FrozenSet[str] = frozenset({"none", "n/a"})

    # Recurring keyword heuristic
    KEYWORD_MIN_LENGTH: int = 5  # words longer than 4 characters
    KEYWORD_MIN_ENTRIES: int = 3  # must appear in at least 3 distinct entries
    KEYWORD_TOP_N: int = 5


# =============================================================================
# 4. METRICS SCORING
# =============================================================================

@dataclass(frozen=True)
class MetricsScoringConfig:
    """Weights and bands for the per-person metrics record."""

    # Velocity trend
    VELOCITY_TREND_MIN_ENTRIES: int = 10
    VELOCITY_TREND_CHANGE_PERCENT: float = 15.0
    VELOCITY_OLDER_AVG_FLOOR: float = 0.1

    # Timing (minutes since local midnight)
    LATE_AFTER_MINUTES: int = 12 * 60

    # Sentiment
    SENTIMENT_SAMPLE_SIZE: int = 10
    SENTIMENT_TREND_THRESHOLD: float = 0.2

    # Risk is always assessed over this trailing window, independent of period
    RISK_WINDOW_DAYS: int = 30

    # Engagement score (0-100)
    ENGAGEMENT_CONSISTENCY_WEIGHT: float = 0.4
    ENGAGEMENT_CONSISTENCY_CAP: float = 40.0
    ENGAGEMENT_SENTIMENT_MULTIPLIER: float = 15.0
    ENGAGEMENT_SENTIMENT_CAP: float = 30.0
    ENGAGEMENT_BLOCKER_FREQUENCY_THRESHOLD: float = 30.0
    ENGAGEMENT_LOW_BLOCKER_POINTS: int = 20
    ENGAGEMENT_HIGH_BLOCKER_POINTS: int = 10
    ENGAGEMENT_LATE_RATIO_THRESHOLD: float = 0.3
    ENGAGEMENT_TIMELY_POINTS: int = 10
    ENGAGEMENT_LATE_POINTS: int = 5

    # Overall score (0-100)
    OVERALL_CONSISTENCY_WEIGHT: float = 0.3
    OVERALL_CONSISTENCY_CAP: float = 30.0
    OVERALL_ENGAGEMENT_WEIGHT: float = 0.25
    OVERALL_ENGAGEMENT_CAP: float = 25.0
    VELOCITY_BAND_POINTS: Dict[VelocityTrend, int] = field(default_factory=lambda: {
        VelocityTrend.INCREASING: 20,
        VelocityTrend.STABLE: 15,
        VelocityTrend.DECREASING: 5,
    })
    RISK_BAND_POINTS: Dict[RiskLevel, int] = field(default_factory=lambda: {
        RiskLevel.LOW: 25,
        RiskLevel.MEDIUM: 15,
        RiskLevel.HIGH: 5,
    })


# =============================================================================
# 5. RISK SCORING
# =============================================================================

@dataclass(frozen=True)
class RiskScoringConfig:
    """Additive risk factors. Each factor is evaluated independently."""

    DEFAULT_WINDOW_DAYS: int = 30

    # Submission rate (entries / window days)
    LOW_SUBMISSION_RATE: float = 0.5
    LOW_SUBMISSION_POINTS: int = 30
    INCONSISTENT_SUBMISSION_RATE: float = 0.7
    INCONSISTENT_SUBMISSION_POINTS: int = 15

    # Blocker rate (blocker entries / entries)
    FREQUENT_BLOCKER_RATE: float = 0.5
    FREQUENT_BLOCKER_POINTS: int = 25
    REGULAR_BLOCKER_RATE: float = 0.3
    REGULAR_BLOCKER_POINTS: int = 10

    # Recent half rate below this fraction of the older half rate
    DECLINING_FREQUENCY_RATIO: float = 0.7
    DECLINING_FREQUENCY_POINTS: int = 20

    # Sentiment over the most recent entries
    SENTIMENT_SAMPLE_SIZE: int = 5
    NEGATIVE_SENTIMENT_THRESHOLD: float = -0.3
    NEGATIVE_SENTIMENT_POINTS: int = 25
    LOW_ENGAGEMENT_THRESHOLD: float = 0.0
    LOW_ENGAGEMENT_POINTS: int = 10

    # Hours over the most recent entries
    WORKLOAD_SAMPLE_SIZE: int = 7
    HIGH_WORKLOAD_HOURS: float = 70.0
    HIGH_WORKLOAD_POINTS: int = 15

    # Level bands compare the raw (uncapped) sum
    HIGH_LEVEL_SCORE: int = 50
    MEDIUM_LEVEL_SCORE: int = 25
    MAX_REPORTED_SCORE: int = 100


# =============================================================================
# 6. ALERT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class AlertTemplate:
    """Static parts of an alert; descriptions are built from the triggering numbers."""
    severity: Severity
    title: str
    metric: str
    suggested_actions: Tuple[str, ...]


@dataclass(frozen=True)
class AlertConfig:
    """Alert dedup, lifecycle and detector thresholds."""

    DEDUP_WINDOW_DAYS: int = 7
    EXPIRY_DAYS: int = 30
    EXPIRED_RESOLUTION: str = "Auto-resolved: Alert expired"
    DISMISSED_RESOLUTION: str = "Dismissed by operator"

    PRIORITY_BY_SEVERITY: Dict[Severity, int] = field(default_factory=lambda: {
        Severity.CRITICAL: 10,
        Severity.WARNING: 7,
        Severity.INFO: 5,
    })

    # Windows
    RECENT_WINDOW_DAYS: int = 7
    BLOCKER_WINDOW_DAYS: int = 14

    # Declining performance
    DECLINE_PREVIOUS_MIN: int = 4
    DECLINE_RECENT_MAX: int = 2
    NO_SUBMISSION_REPORTED_DAYS: int = 7
    NO_SUBMISSION_THRESHOLD_DAYS: int = 3

    # Repeated blockers
    BLOCKER_MIN_ENTRIES: int = 3
    BLOCKER_THEMES_SHOWN: int = 3

    # Sentiment red flags
    SENTIMENT_MIN_ENTRIES: int = 3
    SENTIMENT_SAMPLE_SIZE: int = 5
    SENTIMENT_AVERAGE_THRESHOLD: float = -0.4
    SENTIMENT_NEGATIVE_ENTRY_THRESHOLD: float = -0.3
    SENTIMENT_NEGATIVE_ENTRY_COUNT: int = 3
    SENTIMENT_REPORTED_THRESHOLD: int = -30

    # Capacity
    OVERWORK_HOURS: float = 50.0
    OVERWORK_MIN_ENTRIES: int = 3
    UNDERUTILIZATION_HOURS: float = 20.0
    UNDERUTILIZATION_MIN_ENTRIES: int = 4

    TEMPLATES: Dict[AlertType, AlertTemplate] = field(default_factory=lambda: {
        AlertType.DECLINING_PERFORMANCE: AlertTemplate(
            severity=Severity.WARNING,
            title="Declining Submission Rate",
            metric="submissionRate",
            suggested_actions=(
                "Schedule a 1-on-1 check-in",
                "Review workload and blockers",
                "Ensure team member has necessary support",
            ),
        ),
        AlertType.NO_RECENT_SUBMISSIONS: AlertTemplate(
            severity=Severity.CRITICAL,
            title="No Recent Submissions",
            metric="daysWithoutSubmission",
            suggested_actions=(
                "Reach out immediately to check if everything is okay",
                "Verify if team member is on leave or has technical issues",
                "Review onboarding/training if this is a new team member",
            ),
        ),
        AlertType.REPEATED_BLOCKERS: AlertTemplate(
            severity=Severity.WARNING,
            title="Recurring Blockers Detected",
            metric="blockerFrequency",
            suggested_actions=(
                "Schedule time to help resolve persistent blockers",
                "Identify if this is a systemic issue affecting the team",
                "Provide additional resources or training",
                "Consider pair programming or mentorship",
            ),
        ),
        AlertType.SENTIMENT_RISK: AlertTemplate(
            severity=Severity.CRITICAL,
            title="Potential Burnout Detected",
            metric="sentimentScore",
            suggested_actions=(
                "Schedule immediate 1-on-1 to discuss wellbeing",
                "Review workload and consider redistributing tasks",
                "Discuss work-life balance and time off options",
                "Check for team conflicts or external stressors",
            ),
        ),
        AlertType.OVERWORK: AlertTemplate(
            severity=Severity.WARNING,
            title="High Workload Detected",
            metric="weeklyHours",
            suggested_actions=(
                "Review task priorities and defer non-critical work",
                "Redistribute tasks to other team members",
                "Discuss realistic deadlines and expectations",
                "Ensure team member takes breaks and time off",
            ),
        ),
        AlertType.UNDERUTILIZATION: AlertTemplate(
            severity=Severity.INFO,
            title="Low Activity Detected",
            metric="weeklyHours",
            suggested_actions=(
                "Check if team member has sufficient work assigned",
                "Identify any hidden blockers preventing progress",
                "Consider assigning new projects or initiatives",
                "Verify if this is accurate or if estimates need calibration",
            ),
        ),
    })

    def priority_for(self, severity: Severity) -> int:
        return self.PRIORITY_BY_SEVERITY.get(Severity(severity), 5)


# =============================================================================
# 7. ACHIEVEMENT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class Badge:
    """One rung of a badge ladder."""
    achievement_type: AchievementType
    level: BadgeLevel
    threshold: float
    name: str
    icon: str
    description: str


@dataclass(frozen=True)
class AchievementConfig:
    """Badge catalog and the data windows each rule family evaluates."""

    RULE_WINDOW_DAYS: int = 30
    STREAK_LOOKBACK_DAYS: int = 365

    VELOCITY_MIN_SUBMISSIONS: int = 20
    EARLY_BIRD_MIN_SUBMISSIONS: int = 15
    EARLY_BIRD_HOUR: int = 9
    CONSISTENCY_MIN_SUBMISSIONS: int = 20
    CONSISTENCY_EXPECTED_DAYS: int = 22

    LEVEL_POINTS: Dict[BadgeLevel, int] = field(default_factory=lambda: {
        BadgeLevel.BRONZE: 10,
        BadgeLevel.SILVER: 25,
        BadgeLevel.GOLD: 50,
        BadgeLevel.PLATINUM: 100,
    })

    BADGES: Tuple[Badge, ...] = (
        Badge(AchievementType.STREAK, BadgeLevel.BRONZE, 7, "Week Warrior", "🔥",
              "Maintained a 7-day standup streak"),
        Badge(AchievementType.STREAK, BadgeLevel.SILVER, 30, "Month Master", "🔥🔥",
              "Maintained a 30-day standup streak"),
        Badge(AchievementType.STREAK, BadgeLevel.GOLD, 90, "Quarter Champion", "🔥🔥🔥",
              "Maintained a 90-day standup streak"),
        Badge(AchievementType.STREAK, BadgeLevel.PLATINUM, 180, "Consistency Legend", "🔥🔥🔥🔥",
              "Maintained a 180-day standup streak"),
        Badge(AchievementType.VELOCITY, BadgeLevel.BRONZE, 3, "Speed Demon", "⚡",
              "Completed 3+ tasks per day on average"),
        Badge(AchievementType.VELOCITY, BadgeLevel.SILVER, 5, "Productivity Pro", "⚡⚡",
              "Completed 5+ tasks per day on average"),
        Badge(AchievementType.VELOCITY, BadgeLevel.GOLD, 8, "Velocity Master", "⚡⚡⚡",
              "Completed 8+ tasks per day on average"),
        Badge(AchievementType.EARLY_BIRD, BadgeLevel.BRONZE, 50, "Morning Person", "🌅",
              "50% of standups submitted before 9am"),
        Badge(AchievementType.EARLY_BIRD, BadgeLevel.SILVER, 75, "Early Bird", "🌅🌅",
              "75% of standups submitted before 9am"),
        Badge(AchievementType.EARLY_BIRD, BadgeLevel.GOLD, 90, "Dawn Warrior", "🌅🌅🌅",
              "90% of standups submitted before 9am"),
        Badge(AchievementType.CONSISTENCY, BadgeLevel.BRONZE, 80, "Reliable Reporter", "📊",
              "Submitted 80% of expected standups"),
        Badge(AchievementType.CONSISTENCY, BadgeLevel.SILVER, 90, "Consistency King", "📊📊",
              "Submitted 90% of expected standups"),
        Badge(AchievementType.CONSISTENCY, BadgeLevel.GOLD, 95, "Perfect Attendance", "📊📊📊",
              "Submitted 95% of expected standups"),
    )

    def badges_for(self, achievement_type: AchievementType) -> Tuple[Badge, ...]:
        return tuple(b for b in self.BADGES if b.achievement_type == achievement_type)


# =============================================================================
# 8. CONFIGURATION FACTORY
# =============================================================================

@dataclass(frozen=True)
class AppConstants:
    """
    Container for all scoring constants.

    Usage:
        from pulse.constants import get_constants
        constants = get_constants()

        expected = constants.periods.expected_for(Period.WEEK)
        points = constants.scoring.RISK_BAND_POINTS[RiskLevel.LOW]
    """

    periods: PeriodConfig = field(default_factory=PeriodConfig)
    text: TextAnalysisConfig = field(default_factory=TextAnalysisConfig)
    scoring: MetricsScoringConfig = field(default_factory=MetricsScoringConfig)
    risk: RiskScoringConfig = field(default_factory=RiskScoringConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    achievements: AchievementConfig = field(default_factory=AchievementConfig)


@lru_cache()
def get_constants() -> AppConstants:
    """
    Get cached constants instance.

    Returns the same instance throughout the application lifecycle.
    """
    return AppConstants()
