"""
Alert Engine - detectors, deduplicated alert upserts and the expiry sweep

Features:
- Six independent detectors scanning bounded recent windows
- One upsert primitive: a repeat detection within the dedup window updates the
  active alert in place instead of creating a duplicate
- Expiry sweep: the only automatic exit from "active"
- Listing and manual dismissal for operators

An active alert whose condition no longer holds is left active. Nothing here
resolves an alert because its detector stopped firing; expire_alerts() and
dismiss_alert() are the only transitions out of "active".
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pulse.constants import AlertType, AlertStatus, get_constants
from pulse.core.config import get_settings
from pulse.core.exceptions import NotFoundException
from pulse.core.metrics import ALERTS_TOTAL, ALERTS_EXPIRED_TOTAL, record_unit_failure
from pulse.models.db_models import Alert, StandupEntry
from pulse.services.calculations import round_half_up, safe_ratio, utc_now, to_naive_utc, local_today
from pulse.services.db_service import DatabaseService, get_db_service
from pulse.services.entry_service import (
    get_entries, count_entries, get_blocker_entries, distinct_person_ids, latest_person_name,
)
from pulse.services.sentiment_service import SentimentScorer, get_sentiment_scorer
from pulse.services.text_analysis import RecurringKeywordStrategy, sentiment_text, get_keyword_strategy

logger = logging.getLogger(__name__)


@dataclass
class AlertCandidate:
    """What a detector found; severity, title and actions come from the type's template."""
    workspace_id: str
    alert_type: AlertType
    person_id: str
    person_name: str
    description: str
    current_value: Optional[float] = None
    threshold: Optional[float] = None
    related_entry_ids: List[int] = field(default_factory=list)


class AlertEngine:
    """Runs the detectors for a workspace and maintains alert records."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        scorer: Optional[SentimentScorer] = None,
        clock: Callable[[], datetime] = utc_now,
        keyword_strategy: Optional[RecurringKeywordStrategy] = None,
    ):
        self.db = db or get_db_service()
        self.scorer = scorer or get_sentiment_scorer()
        self.clock = clock
        self.keyword_strategy = keyword_strategy or get_keyword_strategy()
        self.settings = get_settings()
        self.config = get_constants().alerts

    def _today(self) -> date:
        return local_today(self.clock(), self.settings.timezone)

    # =========================================================================
    # Upsert primitive
    # =========================================================================

    def upsert_alert(self, candidate: AlertCandidate) -> Alert:
        """Create the alert, or record a repeat on the active one within the dedup window."""
        with self.db.get_session() as session:
            return self._upsert_in_session(session, candidate)

    def _upsert_in_session(self, session: Session, candidate: AlertCandidate) -> Alert:
        cfg = self.config
        now = to_naive_utc(self.clock())
        alert_type = AlertType(candidate.alert_type)

        existing = session.execute(
            select(Alert)
            .where(
                Alert.workspace_id == candidate.workspace_id,
                Alert.alert_type == alert_type.value,
                Alert.person_id == candidate.person_id,
                Alert.status == AlertStatus.ACTIVE.value,
                Alert.created_at >= now - timedelta(days=cfg.DEDUP_WINDOW_DAYS),
            )
            .order_by(Alert.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

        if existing is not None:
            related = list(existing.related_entry_ids or [])
            related += [i for i in candidate.related_entry_ids if i not in related]
            session.execute(
                update(Alert)
                .where(Alert.id == existing.id)
                .values(
                    occurrence_count=Alert.occurrence_count + 1,
                    last_occurrence=now,
                    is_recurring=True,
                    related_entry_ids=related,
                )
            )
            session.flush()
            session.refresh(existing)
            ALERTS_TOTAL.labels(alert_type=alert_type.value, action="repeated").inc()
            logger.info(
                f"Updated recurring alert for {candidate.person_name}: {existing.title} "
                f"(occurrence {existing.occurrence_count})",
                extra={"person_id": candidate.person_id, "workspace_id": candidate.workspace_id,
                       "detector": alert_type.value},
            )
            return existing

        template = cfg.TEMPLATES[alert_type]
        alert = Alert(
            workspace_id=candidate.workspace_id,
            alert_type=alert_type.value,
            severity=template.severity.value,
            title=template.title,
            description=candidate.description,
            person_id=candidate.person_id,
            person_name=candidate.person_name,
            metric=template.metric,
            current_value=candidate.current_value,
            threshold=candidate.threshold,
            related_entry_ids=list(dict.fromkeys(candidate.related_entry_ids)),
            suggested_actions=list(template.suggested_actions),
            status=AlertStatus.ACTIVE.value,
            is_recurring=False,
            occurrence_count=1,
            priority=cfg.priority_for(template.severity),
            created_at=now,
            last_occurrence=now,
            expires_at=now + timedelta(days=cfg.EXPIRY_DAYS),
        )
        session.add(alert)
        session.flush()
        ALERTS_TOTAL.labels(alert_type=alert_type.value, action="created").inc()
        logger.info(
            f"Created new alert for {candidate.person_name}: {template.title}",
            extra={"person_id": candidate.person_id, "workspace_id": candidate.workspace_id,
                   "detector": alert_type.value},
        )
        return alert

    # =========================================================================
    # Detectors
    # =========================================================================

    def _for_each_person(self, detector: str, workspace_id: str, people: List[str], check) -> int:
        """Run check(person_id) per person; one person's failure never stops the others."""
        raised = 0
        for person_id in people:
            try:
                raised += check(person_id)
            except Exception as e:
                record_unit_failure("alerts", detector)
                logger.error(
                    f"Detector {detector} failed for {person_id}: {e}",
                    extra={"person_id": person_id, "workspace_id": workspace_id, "detector": detector},
                )
        return raised

    def _people_since(self, workspace_id: str, since: date) -> List[str]:
        with self.db.get_session() as session:
            return distinct_person_ids(session, workspace_id, since=since)

    def check_declining_performance(self, workspace_id: str) -> int:
        """
        Compare submissions in the trailing 7 days with the 7 days before.

        Raises a warning when the previous week had at least 4 and the recent
        one at most 2, and a critical "no recent submissions" alert when the
        recent week is empty after a non-empty previous week.
        """
        cfg = self.config
        today = self._today()
        recent_start = today - timedelta(days=cfg.RECENT_WINDOW_DAYS)
        previous_start = today - timedelta(days=2 * cfg.RECENT_WINDOW_DAYS)

        def check(person_id: str) -> int:
            with self.db.get_session() as session:
                recent = count_entries(session, person_id, start=recent_start)
                previous = count_entries(session, person_id, start=previous_start, end=recent_start)
                person_name = latest_person_name(session, person_id)

            raised = 0
            if previous >= cfg.DECLINE_PREVIOUS_MIN and recent <= cfg.DECLINE_RECENT_MAX:
                decline = round_half_up(safe_ratio(previous - recent, previous) * 100)
                self.upsert_alert(AlertCandidate(
                    workspace_id=workspace_id,
                    alert_type=AlertType.DECLINING_PERFORMANCE,
                    person_id=person_id,
                    person_name=person_name,
                    description=(
                        f"{person_name} had {previous} submissions last week but only {recent} this week. "
                        f"This represents a {decline}% decline."
                    ),
                    current_value=recent,
                    threshold=cfg.DECLINE_PREVIOUS_MIN,
                ))
                raised += 1

            if recent == 0 and previous > 0:
                self.upsert_alert(AlertCandidate(
                    workspace_id=workspace_id,
                    alert_type=AlertType.NO_RECENT_SUBMISSIONS,
                    person_id=person_id,
                    person_name=person_name,
                    description=(
                        f"{person_name} has not submitted any standups in the last "
                        f"{cfg.NO_SUBMISSION_REPORTED_DAYS} days. Previous week had {previous} submissions."
                    ),
                    current_value=cfg.NO_SUBMISSION_REPORTED_DAYS,
                    threshold=cfg.NO_SUBMISSION_THRESHOLD_DAYS,
                ))
                raised += 1
            return raised

        people = self._people_since(workspace_id, previous_start)
        return self._for_each_person(AlertType.DECLINING_PERFORMANCE.value, workspace_id, people, check)

    def check_repeated_blockers(self, workspace_id: str) -> int:
        """Warn when a person's blocker texts over 14 days share recurring keywords."""
        cfg = self.config
        since = self._today() - timedelta(days=cfg.BLOCKER_WINDOW_DAYS)

        with self.db.get_session() as session:
            blocker_entries = get_blocker_entries(session, workspace_id, since)

        by_person: Dict[str, List[StandupEntry]] = defaultdict(list)
        for entry in blocker_entries:
            by_person[entry.person_id].append(entry)

        def check(person_id: str) -> int:
            entries = by_person[person_id]
            if len(entries) < cfg.BLOCKER_MIN_ENTRIES:
                return 0
            keywords = self.keyword_strategy.find([e.blockers for e in entries])
            if not keywords:
                return 0
            person_name = entries[0].person_name
            themes = ", ".join(keywords[:cfg.BLOCKER_THEMES_SHOWN])
            self.upsert_alert(AlertCandidate(
                workspace_id=workspace_id,
                alert_type=AlertType.REPEATED_BLOCKERS,
                person_id=person_id,
                person_name=person_name,
                description=(
                    f"{person_name} has reported similar blockers {len(entries)} times in the last "
                    f"{cfg.BLOCKER_WINDOW_DAYS} days. Common themes: {themes}."
                ),
                current_value=len(entries),
                threshold=cfg.BLOCKER_MIN_ENTRIES,
                related_entry_ids=[e.id for e in entries],
            ))
            return 1

        return self._for_each_person(AlertType.REPEATED_BLOCKERS.value, workspace_id, list(by_person), check)

    def check_sentiment_flags(self, workspace_id: str) -> int:
        """Critical alert when recent sentiment is consistently negative."""
        cfg = self.config
        if not self.scorer.available:
            logger.warning("Sentiment scoring not configured - skipping sentiment red flags")
            return 0

        since = self._today() - timedelta(days=cfg.RECENT_WINDOW_DAYS)

        def check(person_id: str) -> int:
            with self.db.get_session() as session:
                entries = [e for e in get_entries(session, person_id, start=since) if e.sentiment_eligible]
            sampled = entries[:cfg.SENTIMENT_SAMPLE_SIZE]
            if len(sampled) < cfg.SENTIMENT_MIN_ENTRIES:
                return 0

            sentiments = self.scorer.score_many(
                [sentiment_text(e) for e in sampled],
                max_workers=self.settings.sentiment_max_workers,
            )
            average = sum(sentiments) / len(sentiments)
            negative_days = sum(1 for s in sentiments if s < cfg.SENTIMENT_NEGATIVE_ENTRY_THRESHOLD)
            if average >= cfg.SENTIMENT_AVERAGE_THRESHOLD and negative_days < cfg.SENTIMENT_NEGATIVE_ENTRY_COUNT:
                return 0

            person_name = sampled[0].person_name
            reported = round_half_up(average * 100)
            self.upsert_alert(AlertCandidate(
                workspace_id=workspace_id,
                alert_type=AlertType.SENTIMENT_RISK,
                person_id=person_id,
                person_name=person_name,
                description=(
                    f"{person_name}'s recent standups show negative sentiment patterns (score: {reported}). "
                    f"{negative_days} out of {len(sampled)} recent updates indicate stress or frustration."
                ),
                current_value=reported,
                threshold=cfg.SENTIMENT_REPORTED_THRESHOLD,
                related_entry_ids=[e.id for e in sampled],
            ))
            return 1

        people = self._people_since(workspace_id, since)
        return self._for_each_person(AlertType.SENTIMENT_RISK.value, workspace_id, people, check)

    def _weekly_entries(self, person_id: str, since: date) -> List[StandupEntry]:
        with self.db.get_session() as session:
            return get_entries(session, person_id, start=since)

    def check_overwork(self, workspace_id: str) -> int:
        """Warn when estimated hours over the trailing 7 days exceed 50."""
        cfg = self.config
        since = self._today() - timedelta(days=cfg.RECENT_WINDOW_DAYS)

        def check(person_id: str) -> int:
            entries = self._weekly_entries(person_id, since)
            total_hours = sum(e.total_hours for e in entries)
            if total_hours <= cfg.OVERWORK_HOURS or len(entries) < cfg.OVERWORK_MIN_ENTRIES:
                return 0
            person_name = entries[0].person_name
            per_day = round_half_up(total_hours / len(entries))
            self.upsert_alert(AlertCandidate(
                workspace_id=workspace_id,
                alert_type=AlertType.OVERWORK,
                person_id=person_id,
                person_name=person_name,
                description=(
                    f"{person_name} is estimated to be working {total_hours:g}h over {len(entries)} days "
                    f"(avg {per_day}h/day). This may lead to burnout."
                ),
                current_value=total_hours,
                threshold=cfg.OVERWORK_HOURS,
                related_entry_ids=[e.id for e in entries],
            ))
            return 1

        people = self._people_since(workspace_id, since)
        return self._for_each_person(AlertType.OVERWORK.value, workspace_id, people, check)

    def check_underutilization(self, workspace_id: str) -> int:
        """Info alert when a regular submitter reports under 20 hours over 7 days."""
        cfg = self.config
        since = self._today() - timedelta(days=cfg.RECENT_WINDOW_DAYS)

        def check(person_id: str) -> int:
            entries = self._weekly_entries(person_id, since)
            if len(entries) < cfg.UNDERUTILIZATION_MIN_ENTRIES:
                return 0
            total_hours = sum(e.total_hours for e in entries)
            if total_hours >= cfg.UNDERUTILIZATION_HOURS:
                return 0
            person_name = entries[0].person_name
            self.upsert_alert(AlertCandidate(
                workspace_id=workspace_id,
                alert_type=AlertType.UNDERUTILIZATION,
                person_id=person_id,
                person_name=person_name,
                description=(
                    f"{person_name} reported only {total_hours:g}h of work over {len(entries)} days. "
                    f"They may be blocked or have capacity for additional tasks."
                ),
                current_value=total_hours,
                threshold=cfg.UNDERUTILIZATION_HOURS,
                related_entry_ids=[e.id for e in entries],
            ))
            return 1

        people = self._people_since(workspace_id, since)
        return self._for_each_person(AlertType.UNDERUTILIZATION.value, workspace_id, people, check)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def expire_alerts(self, workspace_id: Optional[str] = None) -> int:
        """Dismiss every active alert whose expiry time has passed."""
        now = to_naive_utc(self.clock())
        stmt = (
            update(Alert)
            .where(Alert.status == AlertStatus.ACTIVE.value, Alert.expires_at < now)
            .values(
                status=AlertStatus.DISMISSED.value,
                resolution=self.config.EXPIRED_RESOLUTION,
                resolved_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if workspace_id is not None:
            stmt = stmt.where(Alert.workspace_id == workspace_id)

        with self.db.get_session() as session:
            expired = session.execute(stmt).rowcount or 0

        if expired:
            ALERTS_EXPIRED_TOTAL.inc(expired)
            logger.info(f"Auto-resolved {expired} expired alerts", extra={"workspace_id": workspace_id})
        return expired

    def run_alert_checks(self, workspace_id: str) -> Dict[str, int]:
        """
        Run every detector in sequence, then the expiry sweep.

        Returns:
            Alerts raised per detector, expired count, and the number of
            detectors that failed outright
        """
        logger.info("Running alert engine checks...", extra={"workspace_id": workspace_id})

        detectors = [
            (AlertType.DECLINING_PERFORMANCE.value, self.check_declining_performance),
            (AlertType.REPEATED_BLOCKERS.value, self.check_repeated_blockers),
            (AlertType.SENTIMENT_RISK.value, self.check_sentiment_flags),
            (AlertType.OVERWORK.value, self.check_overwork),
            (AlertType.UNDERUTILIZATION.value, self.check_underutilization),
        ]

        results: Dict[str, int] = {}
        failed = 0
        for name, detector in detectors:
            try:
                results[name] = detector(workspace_id)
            except Exception as e:
                failed += 1
                results[name] = 0
                record_unit_failure("alerts", name)
                logger.error(
                    f"Detector {name} failed: {e}",
                    extra={"workspace_id": workspace_id, "detector": name},
                )

        try:
            results["expired"] = self.expire_alerts(workspace_id)
        except Exception as e:
            failed += 1
            results["expired"] = 0
            record_unit_failure("alerts", "expiry_sweep")
            logger.error(f"Alert expiry sweep failed: {e}", extra={"workspace_id": workspace_id})

        results["failed"] = failed
        logger.info(f"Alert engine checks completed: {results}", extra={"workspace_id": workspace_id})
        return results

    # =========================================================================
    # Operator reads and actions
    # =========================================================================

    def list_alerts(
        self,
        workspace_id: str,
        status: AlertStatus = AlertStatus.ACTIVE,
        person_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Alert]:
        """Alerts ordered by priority, then most recent occurrence."""
        stmt = select(Alert).where(
            Alert.workspace_id == workspace_id,
            Alert.status == AlertStatus(status).value,
        )
        if person_id:
            stmt = stmt.where(Alert.person_id == person_id)
        stmt = stmt.order_by(Alert.priority.desc(), Alert.last_occurrence.desc()).limit(limit)

        with self.db.get_session() as session:
            return list(session.execute(stmt).scalars())

    def dismiss_alert(self, alert_id: int, resolution: Optional[str] = None) -> Alert:
        """Dismiss an alert by hand. Dismissing an already dismissed alert is a no-op."""
        with self.db.get_session() as session:
            alert = session.get(Alert, alert_id)
            if alert is None:
                raise NotFoundException("Alert", str(alert_id))
            if alert.status != AlertStatus.DISMISSED.value:
                alert.status = AlertStatus.DISMISSED.value
                alert.resolution = resolution or self.config.DISMISSED_RESOLUTION
                alert.resolved_at = to_naive_utc(self.clock())
                session.flush()
                logger.info(
                    f"Alert {alert_id} dismissed",
                    extra={"person_id": alert.person_id, "workspace_id": alert.workspace_id},
                )
            return alert
