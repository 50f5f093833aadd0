"""
Unit tests for the Alert Engine.

Tests cover:
- Dedup upsert: repeats within 7 days update one record
- Each detector's trigger and quiet cases
- Lifecycle: conditions clearing is a no-op, expiry sweep, manual dismissal
- Listing order and the full check run
"""
import pytest
from datetime import datetime, timedelta

from conftest import TODAY, StubScorer
from pulse.constants import AlertType, AlertStatus
from pulse.core.exceptions import NotFoundException
from pulse.services.alert_service import AlertCandidate, AlertEngine


@pytest.fixture
def engine(db_service, neutral_scorer, clock):
    return AlertEngine(db=db_service, scorer=neutral_scorer, clock=clock)


def candidate(person_id: str = "alice", alert_type: AlertType = AlertType.OVERWORK,
              workspace_id: str = "default", related=None) -> AlertCandidate:
    return AlertCandidate(
        workspace_id=workspace_id,
        alert_type=alert_type,
        person_id=person_id,
        person_name=person_id.capitalize(),
        description="Test alert",
        current_value=60,
        threshold=50,
        related_entry_ids=related or [],
    )


def active(engine, person_id=None):
    return engine.list_alerts("default", status=AlertStatus.ACTIVE, person_id=person_id)


class TestUpsertAlert:
    """Tests for the dedup upsert."""

    def test_new_alert_uses_template(self, engine):
        alert = engine.upsert_alert(candidate(related=[3, 4]))

        assert alert.severity == "warning"
        assert alert.title == "High Workload Detected"
        assert alert.priority == 7
        assert alert.status == "active"
        assert alert.occurrence_count == 1
        assert alert.is_recurring is False
        assert alert.related_entry_ids == [3, 4]
        assert alert.created_at == datetime(2026, 10, 23, 12, 0)
        assert alert.expires_at == datetime(2026, 11, 22, 12, 0)

    def test_repeat_within_window_updates_in_place(self, engine, clock):
        first = engine.upsert_alert(candidate(related=[1, 2]))
        clock.advance(days=3)

        second = engine.upsert_alert(candidate(related=[2, 5]))

        assert second.id == first.id
        assert second.occurrence_count == 2
        assert second.is_recurring is True
        assert second.related_entry_ids == [1, 2, 5]
        assert second.last_occurrence == datetime(2026, 10, 26, 12, 0)
        assert second.created_at == first.created_at
        assert len(active(engine)) == 1

    def test_repeat_after_window_creates_new_alert(self, engine, clock):
        first = engine.upsert_alert(candidate())
        clock.advance(days=8)

        second = engine.upsert_alert(candidate())

        assert second.id != first.id
        assert second.occurrence_count == 1
        assert len(active(engine)) == 2

    def test_dedup_key_includes_person_and_type(self, engine):
        engine.upsert_alert(candidate("alice"))
        engine.upsert_alert(candidate("bob"))
        engine.upsert_alert(candidate("alice", alert_type=AlertType.UNDERUTILIZATION))
        assert len(active(engine)) == 3

    def test_dismissed_alert_is_not_reused(self, engine):
        first = engine.upsert_alert(candidate())
        engine.dismiss_alert(first.id)

        second = engine.upsert_alert(candidate())

        assert second.id != first.id
        assert second.occurrence_count == 1


class TestDecliningPerformance:
    """Tests for the declining / no-recent-submissions detector."""

    def test_silent_week_raises_warning_and_critical(self, engine, make_entry):
        for offset in range(8, 14):
            make_entry("bob", TODAY - timedelta(days=offset))

        assert engine.check_declining_performance("default") == 2

        alerts = {a.alert_type: a for a in active(engine, "bob")}
        critical = alerts[AlertType.NO_RECENT_SUBMISSIONS.value]
        assert critical.severity == "critical"
        assert critical.priority == 10
        assert critical.current_value == 7
        assert critical.threshold == 3
        warning = alerts[AlertType.DECLINING_PERFORMANCE.value]
        assert warning.severity == "warning"
        assert warning.current_value == 0
        assert "had 6 submissions last week but only 0 this week" in warning.description
        assert "100% decline" in warning.description

    def test_drop_to_two_is_a_warning_only(self, engine, make_entry):
        for offset in (0, 1, 8, 9, 10, 11):
            make_entry("bob", TODAY - timedelta(days=offset))

        assert engine.check_declining_performance("default") == 1

        [alert] = active(engine, "bob")
        assert alert.alert_type == AlertType.DECLINING_PERFORMANCE.value
        assert "50% decline" in alert.description

    def test_small_previous_week_only_flags_silence(self, engine, make_entry):
        for offset in (8, 9, 10):
            make_entry("bob", TODAY - timedelta(days=offset))

        assert engine.check_declining_performance("default") == 1
        [alert] = active(engine, "bob")
        assert alert.alert_type == AlertType.NO_RECENT_SUBMISSIONS.value

    def test_steady_submitter_is_quiet(self, engine, make_entry):
        for offset in range(14):
            make_entry("alice", TODAY - timedelta(days=offset))
        assert engine.check_declining_performance("default") == 0

    def test_cleared_condition_leaves_alert_active(self, engine, make_entry, clock):
        for offset in range(8, 14):
            make_entry("bob", TODAY - timedelta(days=offset))
        engine.check_declining_performance("default")

        for offset in range(3):
            make_entry("bob", TODAY - timedelta(days=offset))
        assert engine.check_declining_performance("default") == 0

        assert len(active(engine, "bob")) == 2


class TestRepeatedBlockers:

    def test_shared_themes_raise_warning(self, engine, make_entry):
        entries = [
            make_entry("alice", TODAY - timedelta(days=offset), blockers="Waiting on staging deploy")
            for offset in (1, 4, 9)
        ]

        assert engine.check_repeated_blockers("default") == 1

        [alert] = active(engine, "alice")
        assert alert.alert_type == AlertType.REPEATED_BLOCKERS.value
        assert alert.current_value == 3
        assert alert.threshold == 3
        assert sorted(alert.related_entry_ids) == sorted(e.id for e in entries)
        assert "Common themes: deploy, staging, waiting." in alert.description

    def test_two_blockers_are_not_enough(self, engine, make_entry):
        for offset in (1, 4):
            make_entry("alice", TODAY - timedelta(days=offset), blockers="Waiting on staging deploy")
        assert engine.check_repeated_blockers("default") == 0

    def test_unrelated_blockers_are_quiet(self, engine, make_entry):
        for offset, text in enumerate(["Flaky tests", "Laptop broke", "Vendor contract"]):
            make_entry("alice", TODAY - timedelta(days=offset), blockers=text)
        assert engine.check_repeated_blockers("default") == 0

    def test_old_blockers_are_ignored(self, engine, make_entry):
        for offset in (15, 16, 17):
            make_entry("alice", TODAY - timedelta(days=offset), blockers="Waiting on staging deploy")
        assert engine.check_repeated_blockers("default") == 0


class TestSentimentFlags:

    def test_negative_average_raises_critical(self, db_service, clock, make_entry):
        engine = AlertEngine(db=db_service, scorer=StubScorer(default=-0.6), clock=clock)
        for offset in range(3):
            make_entry("alice", TODAY - timedelta(days=offset))

        assert engine.check_sentiment_flags("default") == 1

        [alert] = active(engine, "alice")
        assert alert.severity == "critical"
        assert alert.current_value == -60
        assert alert.threshold == -30
        assert "3 out of 3 recent updates" in alert.description

    def test_several_negative_days_raise_even_with_mild_average(self, db_service, clock, make_entry):
        engine = AlertEngine(db=db_service, scorer=StubScorer(default=-0.35), clock=clock)
        for offset in range(4):
            make_entry("alice", TODAY - timedelta(days=offset))
        assert engine.check_sentiment_flags("default") == 1

    def test_positive_team_is_quiet(self, db_service, positive_scorer, clock, make_entry):
        engine = AlertEngine(db=db_service, scorer=positive_scorer, clock=clock)
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset))
        assert engine.check_sentiment_flags("default") == 0

    def test_ineligible_entries_are_not_scored(self, db_service, clock, make_entry):
        scorer = StubScorer(default=-0.9)
        engine = AlertEngine(db=db_service, scorer=scorer, clock=clock)
        make_entry("alice", TODAY, sentiment_eligible=False)
        make_entry("alice", TODAY - timedelta(days=1))
        make_entry("alice", TODAY - timedelta(days=2))

        assert engine.check_sentiment_flags("default") == 0
        assert scorer.calls == []

    def test_skipped_when_scorer_unavailable(self, db_service, clock, make_entry):
        scorer = StubScorer(default=-0.9, available=False)
        engine = AlertEngine(db=db_service, scorer=scorer, clock=clock)
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset))

        assert engine.check_sentiment_flags("default") == 0
        assert scorer.calls == []


class TestCapacity:

    def test_overwork(self, engine, make_entry):
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=12)

        assert engine.check_overwork("default") == 1

        [alert] = active(engine, "alice")
        assert alert.current_value == 60
        assert alert.threshold == 50
        assert "60h over 5 days (avg 12h/day)" in alert.description

    def test_overwork_needs_three_entries(self, engine, make_entry):
        for offset in range(2):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=16,
                       today_hours_estimate=16)
        assert engine.check_overwork("default") == 0

    def test_underutilization(self, engine, make_entry):
        for offset in range(4):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=4)

        assert engine.check_underutilization("default") == 1

        [alert] = active(engine, "alice")
        assert alert.severity == "info"
        assert alert.priority == 5
        assert alert.current_value == 16

    def test_regular_hours_are_quiet(self, engine, make_entry):
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=8)
        assert engine.check_overwork("default") == 0
        assert engine.check_underutilization("default") == 0


class TestLifecycle:
    """Tests for expiry, dismissal, listing and the full run."""

    def test_expiry_sweep(self, engine, clock):
        alert = engine.upsert_alert(candidate())
        clock.advance(days=29)
        assert engine.expire_alerts() == 0

        clock.advance(days=2)
        assert engine.expire_alerts() == 1

        [expired] = engine.list_alerts("default", status=AlertStatus.DISMISSED)
        assert expired.id == alert.id
        assert expired.resolution == "Auto-resolved: Alert expired"
        assert expired.resolved_at == datetime(2026, 11, 23, 12, 0)

    def test_expiry_sweep_by_workspace(self, engine, clock):
        engine.upsert_alert(candidate(workspace_id="default"))
        engine.upsert_alert(candidate(workspace_id="other"))
        clock.advance(days=31)

        assert engine.expire_alerts("default") == 1
        assert len(engine.list_alerts("other")) == 1

    def test_list_orders_by_priority_then_recency(self, engine, clock):
        engine.upsert_alert(candidate("carol", AlertType.UNDERUTILIZATION))
        engine.upsert_alert(candidate("alice", AlertType.OVERWORK))
        clock.advance(hours=1)
        engine.upsert_alert(candidate("bob", AlertType.OVERWORK))
        engine.upsert_alert(candidate("dave", AlertType.NO_RECENT_SUBMISSIONS))

        ordered = [a.person_id for a in active(engine)]

        assert ordered == ["dave", "bob", "alice", "carol"]

    def test_dismiss_alert(self, engine):
        alert = engine.upsert_alert(candidate())

        dismissed = engine.dismiss_alert(alert.id, resolution="Talked it through")

        assert dismissed.status == "dismissed"
        assert dismissed.resolution == "Talked it through"
        assert active(engine) == []

    def test_dismiss_unknown_alert(self, engine):
        with pytest.raises(NotFoundException):
            engine.dismiss_alert(999)

    def test_run_alert_checks(self, engine, make_entry):
        for offset in range(8, 14):
            make_entry("bob", TODAY - timedelta(days=offset))
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=12)

        results = engine.run_alert_checks("default")

        assert results == {
            "declining_performance": 2,
            "repeated_blockers": 0,
            "sentiment_risk": 0,
            "overwork": 1,
            "underutilization": 0,
            "expired": 0,
            "failed": 0,
        }

    def test_failed_detector_does_not_stop_the_run(self, engine, make_entry, monkeypatch):
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset), yesterday_hours_estimate=12)

        def broken(workspace_id):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(engine, "check_repeated_blockers", broken)

        results = engine.run_alert_checks("default")

        assert results["failed"] == 1
        assert results["repeated_blockers"] == 0
        assert results["overwork"] == 1
