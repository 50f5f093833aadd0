"""
Achievement Engine - idempotent badge awards, streaks and the leaderboard

Four rule families (streak, velocity, early bird, consistency) are evaluated
independently, each against its own data window. Every threshold met is
inserted with ON CONFLICT DO NOTHING on (person, type, level), so re-running
a rule the person already satisfies writes nothing.
"""
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy import select

from pulse.constants import AchievementType, Badge, BadgeLevel, get_constants
from pulse.core.config import get_settings
from pulse.core.metrics import ACHIEVEMENTS_AWARDED_TOTAL, record_unit_failure
from pulse.models.db_models import Achievement, StandupEntry
from pulse.schemas.response_schemas import StreakInfo, LeaderboardEntry
from pulse.services.calculations import safe_ratio, utc_now, to_naive_utc, local_today, to_local
from pulse.services.db_service import DatabaseService, get_db_service, upsert
from pulse.services.entry_service import get_entries, latest_person_name
from pulse.services.text_analysis import TaskExtractor, extract_tasks, count_entry_tasks

logger = logging.getLogger(__name__)

ACHIEVEMENT_KEY_COLUMNS = ("person_id", "achievement_type", "level")


def compute_streak(submission_dates: Iterable[date], today: date, lookback_days: int = 365) -> StreakInfo:
    """
    Streak figures over the `lookback_days` ending today.

    The current streak counts consecutive days ending today, so it is 0 when
    there is no entry for today.
    """
    window_start = today - timedelta(days=lookback_days - 1)
    dates: Set[date] = {d for d in submission_dates if window_start <= d <= today}

    current = 0
    day = today
    while day in dates:
        current += 1
        day -= timedelta(days=1)

    longest = 0
    run = 0
    for offset in range(lookback_days):
        if today - timedelta(days=offset) in dates:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    return StreakInfo(current=current, longest=longest, total=len(dates))


class AchievementEngine:
    """Evaluates badge rules for one person and serves badge reads."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        clock: Callable[[], datetime] = utc_now,
        task_extractor: TaskExtractor = extract_tasks,
    ):
        self.db = db or get_db_service()
        self.clock = clock
        self.task_extractor = task_extractor
        self.settings = get_settings()
        self.config = get_constants().achievements

    def _today(self) -> date:
        return local_today(self.clock(), self.settings.timezone)

    def _window_entries(self, person_id: str) -> List[StandupEntry]:
        start = self._today() - timedelta(days=self.config.RULE_WINDOW_DAYS)
        with self.db.get_session() as session:
            return get_entries(session, person_id, start=start)

    # =========================================================================
    # Awarding
    # =========================================================================

    def _award_met(
        self,
        person_id: str,
        workspace_id: str,
        achievement_type: AchievementType,
        value: float,
        person_name: Optional[str] = None,
    ) -> List[Badge]:
        """Insert every badge of the type whose threshold `value` meets; return the new ones."""
        met = [b for b in self.config.badges_for(achievement_type) if value >= b.threshold]
        if not met:
            return []

        now = to_naive_utc(self.clock())
        awarded = []
        with self.db.get_session() as session:
            if person_name is None:
                person_name = latest_person_name(session, person_id)
            for badge in met:
                values = {
                    "workspace_id": workspace_id,
                    "person_id": person_id,
                    "person_name": person_name,
                    "achievement_type": badge.achievement_type.value,
                    "badge_name": badge.name,
                    "badge_icon": badge.icon,
                    "description": badge.description,
                    "level": badge.level.value,
                    "threshold": badge.threshold,
                    "earned_at": now,
                    "is_active": True,
                }
                if upsert(session, Achievement, values, ACHIEVEMENT_KEY_COLUMNS):
                    awarded.append(badge)

        for badge in awarded:
            ACHIEVEMENTS_AWARDED_TOTAL.labels(
                achievement_type=badge.achievement_type.value, level=badge.level.value
            ).inc()
            logger.info(
                f"🏆 {person_name} earned: {badge.name} ({badge.level.value})",
                extra={"person_id": person_id, "workspace_id": workspace_id, "rule": achievement_type.value},
            )
        return awarded

    # =========================================================================
    # Rule families
    # =========================================================================

    def get_user_streak(self, person_id: str, today: Optional[date] = None) -> StreakInfo:
        today = today or self._today()
        lookback = self.config.STREAK_LOOKBACK_DAYS
        with self.db.get_session() as session:
            dates = session.execute(
                select(StandupEntry.entry_date).where(
                    StandupEntry.person_id == person_id,
                    StandupEntry.entry_date >= today - timedelta(days=lookback - 1),
                    StandupEntry.entry_date <= today,
                )
            ).scalars()
            return compute_streak(list(dates), today, lookback)

    def check_streak_achievements(self, person_id: str, workspace_id: str) -> List[Badge]:
        streak = self.get_user_streak(person_id)
        return self._award_met(person_id, workspace_id, AchievementType.STREAK, streak.current)

    def check_velocity_achievements(self, person_id: str, workspace_id: str) -> List[Badge]:
        """Average tasks per day over the trailing 30 days, with at least 20 entries."""
        entries = self._window_entries(person_id)
        if len(entries) < self.config.VELOCITY_MIN_SUBMISSIONS:
            return []
        total_tasks = sum(count_entry_tasks(e, self.task_extractor) for e in entries)
        average = safe_ratio(total_tasks, len(entries))
        return self._award_met(
            person_id, workspace_id, AchievementType.VELOCITY, average, entries[0].person_name
        )

    def check_early_bird_achievements(self, person_id: str, workspace_id: str) -> List[Badge]:
        """Share of entries submitted before 9am local time, with at least 15 entries."""
        entries = self._window_entries(person_id)
        if len(entries) < self.config.EARLY_BIRD_MIN_SUBMISSIONS:
            return []
        tz = self.settings.timezone
        early = sum(1 for e in entries if to_local(e.submitted_at, tz).hour < self.config.EARLY_BIRD_HOUR)
        early_rate = safe_ratio(early, len(entries)) * 100
        return self._award_met(
            person_id, workspace_id, AchievementType.EARLY_BIRD, early_rate, entries[0].person_name
        )

    def check_consistency_achievements(self, person_id: str, workspace_id: str) -> List[Badge]:
        """Entries over the trailing 30 days against a 22 working-day baseline."""
        entries = self._window_entries(person_id)
        if len(entries) < self.config.CONSISTENCY_MIN_SUBMISSIONS:
            return []
        rate = safe_ratio(len(entries), self.config.CONSISTENCY_EXPECTED_DAYS) * 100
        return self._award_met(
            person_id, workspace_id, AchievementType.CONSISTENCY, rate, entries[0].person_name
        )

    def check_all_achievements(self, person_id: str, workspace_id: str) -> List[Badge]:
        """
        Evaluate all four rule families.

        A failing family is logged and skipped; the others still run.

        Returns:
            Badges awarded for the first time by this call
        """
        logger.info(f"Checking achievements for {person_id}", extra={"person_id": person_id})

        families = [
            (AchievementType.STREAK, self.check_streak_achievements),
            (AchievementType.VELOCITY, self.check_velocity_achievements),
            (AchievementType.EARLY_BIRD, self.check_early_bird_achievements),
            (AchievementType.CONSISTENCY, self.check_consistency_achievements),
        ]

        awarded: List[Badge] = []
        for rule, check in families:
            try:
                awarded.extend(check(person_id, workspace_id))
            except Exception as e:
                record_unit_failure("achievements", rule.value)
                logger.error(
                    f"Achievement rule {rule.value} failed for {person_id}: {e}",
                    extra={"person_id": person_id, "workspace_id": workspace_id, "rule": rule.value},
                )
        return awarded

    # =========================================================================
    # Reads
    # =========================================================================

    def get_leaderboard(self, workspace_id: str) -> List[LeaderboardEntry]:
        """Points per person from active badges, highest first."""
        with self.db.get_session() as session:
            achievements = list(session.execute(
                select(Achievement)
                .where(Achievement.workspace_id == workspace_id, Achievement.is_active.is_(True))
                .order_by(Achievement.person_id)
            ).scalars())

        board: "OrderedDict[str, LeaderboardEntry]" = OrderedDict()
        for achievement in achievements:
            entry = board.setdefault(
                achievement.person_id,
                LeaderboardEntry(person_id=achievement.person_id, person_name=achievement.person_name),
            )
            entry.badges += 1
            entry.points += self.config.LEVEL_POINTS.get(BadgeLevel(achievement.level), 0)

        return sorted(board.values(), key=lambda e: e.points, reverse=True)

    def get_user_badges(self, person_id: str) -> List[Achievement]:
        """Active badges, most recently earned first."""
        with self.db.get_session() as session:
            return list(session.execute(
                select(Achievement)
                .where(Achievement.person_id == person_id, Achievement.is_active.is_(True))
                .order_by(Achievement.earned_at.desc())
            ).scalars())
