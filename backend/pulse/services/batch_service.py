"""
Batch passes invoked by the scheduler or the manual trigger endpoints.

Each pass runs under its own run id (attached to every log record), is timed
by the batch Prometheus metrics, and returns a BatchRunSummary. Failures of
individual people or detectors are counted in the summary, never raised.
"""
import logging
from datetime import date, datetime
from typing import Callable, Optional

from pulse.constants import Period
from pulse.core.config import get_settings
from pulse.core.logging import batch_run_context
from pulse.core.metrics import track_batch_run, record_unit_failure
from pulse.schemas.response_schemas import BatchRunSummary
from pulse.services.achievement_service import AchievementEngine
from pulse.services.alert_service import AlertEngine
from pulse.services.calculations import utc_now, local_today
from pulse.services.metrics_service import MetricsCalculator
from pulse.services.roster_service import RosterService

logger = logging.getLogger(__name__)

QUARTER_START_MONTHS = (1, 4, 7, 10)


def periods_due(today: date):
    """Weekly every run, monthly on the 1st, quarterly on the 1st of a quarter."""
    periods = [Period.WEEK]
    if today.day == 1:
        periods.append(Period.MONTH)
        if today.month in QUARTER_START_MONTHS:
            periods.append(Period.QUARTER)
    return periods


class BatchService:
    """Wires the analytics engines together for scheduled runs."""

    def __init__(
        self,
        roster: RosterService,
        metrics: Optional[MetricsCalculator] = None,
        alerts: Optional[AlertEngine] = None,
        achievements: Optional[AchievementEngine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.roster = roster
        self.clock = clock
        self.metrics = metrics or MetricsCalculator(roster=roster, clock=clock)
        self.alerts = alerts or AlertEngine(clock=clock)
        self.achievements = achievements or AchievementEngine(clock=clock)
        self.settings = get_settings()

    def _workspace(self, workspace_id: Optional[str]) -> str:
        return workspace_id or self.settings.default_workspace_id

    def run_metrics_pass(self, workspace_id: Optional[str] = None, today: Optional[date] = None) -> BatchRunSummary:
        workspace_id = self._workspace(workspace_id)
        today = today or local_today(self.clock(), self.settings.timezone)

        with batch_run_context("metrics") as run_id, track_batch_run("metrics"):
            summary = BatchRunSummary(job="metrics", run_id=run_id, workspace_id=workspace_id)
            for period in periods_due(today):
                run = self.metrics.compute_team_metrics(workspace_id, period)
                summary.processed += len(run.records)
                summary.failed += run.failed
                summary.details[period.value] = len(run.records)
            logger.info(f"Metrics pass finished: {summary.processed} records, {summary.failed} failures")
        return summary

    def run_alert_pass(self, workspace_id: Optional[str] = None) -> BatchRunSummary:
        workspace_id = self._workspace(workspace_id)

        with batch_run_context("alerts") as run_id, track_batch_run("alerts"):
            results = self.alerts.run_alert_checks(workspace_id)
            failed = results.pop("failed", 0)
            summary = BatchRunSummary(
                job="alerts",
                run_id=run_id,
                workspace_id=workspace_id,
                processed=sum(v for k, v in results.items() if k != "expired"),
                failed=failed,
                details=results,
            )
        return summary

    def run_achievement_pass(self, workspace_id: Optional[str] = None) -> BatchRunSummary:
        workspace_id = self._workspace(workspace_id)

        with batch_run_context("achievements") as run_id, track_batch_run("achievements"):
            summary = BatchRunSummary(job="achievements", run_id=run_id, workspace_id=workspace_id)
            awarded = 0
            for person_id in self.roster.get_roster(workspace_id):
                try:
                    awarded += len(self.achievements.check_all_achievements(person_id, workspace_id))
                    summary.processed += 1
                except Exception as e:
                    summary.failed += 1
                    record_unit_failure("achievements", "person")
                    logger.error(
                        f"Achievement checks failed for {person_id}: {e}",
                        extra={"person_id": person_id, "workspace_id": workspace_id},
                    )
            summary.details["awarded"] = awarded
            logger.info(f"Achievement pass finished: {summary.processed} people, {awarded} new badges")
        return summary
