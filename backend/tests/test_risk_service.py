"""
Unit tests for the Risk Assessor.

Tests cover:
- Each additive factor and its reason text
- Level bands on the raw sum and the capped reported score
- Sentiment sampling and pre-computed scores
"""
import pytest
from datetime import datetime, time, timedelta

from conftest import TODAY, StubScorer
from pulse.constants import RiskLevel
from pulse.models.db_models import StandupEntry
from pulse.services.risk_service import RiskAssessor


def entry(days_ago: int, blockers: str = "none", hours=None, eligible: bool = True,
          text: str = "- routine work") -> StandupEntry:
    """Unsaved entry; the assessor only reads attributes."""
    day = TODAY - timedelta(days=days_ago)
    return StandupEntry(
        id=1000 - days_ago,
        workspace_id="default",
        person_id="alice",
        person_name="Alice",
        entry_date=day,
        yesterday=text,
        today="",
        blockers=blockers,
        notes="",
        yesterday_hours_estimate=hours,
        today_hours_estimate=None,
        sentiment_eligible=eligible,
        submitted_at=datetime.combine(day, time(9, 0)),
    )


def daily(count: int, **kwargs):
    return [entry(i, **kwargs) for i in range(count)]


@pytest.fixture
def assessor(db_service, neutral_scorer, clock):
    return RiskAssessor(scorer=neutral_scorer, db=db_service, clock=clock)


class TestRiskFactors:
    """Tests for the individual factors."""

    def test_no_entries_is_low_risk(self, assessor):
        result = assessor.assess_entries([], 30)
        assert result.level == RiskLevel.LOW
        assert result.factors == []
        assert result.score == 0

    def test_steady_submitter_has_no_factors(self, assessor):
        result = assessor.assess_entries(daily(30), 30)
        assert result.level == RiskLevel.LOW
        assert result.factors == []
        assert result.score == 0

    def test_low_submission_rate(self, assessor):
        result = assessor.assess_entries(daily(10), 30)
        assert result.factors == ["Low submission rate (33%)"]
        assert result.score == 30
        assert result.level == RiskLevel.MEDIUM

    def test_inconsistent_submissions(self, assessor):
        result = assessor.assess_entries(daily(18), 30)
        assert result.factors == ["Inconsistent submissions (60%)"]
        assert result.score == 15
        assert result.level == RiskLevel.LOW

    def test_frequent_blockers(self, assessor):
        entries = daily(11, blockers="Waiting on API keys") + [entry(i) for i in range(11, 20)]
        result = assessor.assess_entries(entries, 20)
        assert result.factors == ["Frequent blockers (55% of days)"]
        assert result.score == 25

    def test_regular_blockers(self, assessor):
        entries = daily(7, blockers="Flaky CI") + [entry(i) for i in range(7, 20)]
        result = assessor.assess_entries(entries, 20)
        assert result.factors == ["Regular blockers (35% of days)"]
        assert result.score == 10

    def test_none_blockers_never_count(self, assessor):
        entries = daily(10, blockers="None") + [entry(i, blockers="n/a") for i in range(10, 20)]
        assert assessor.assess_entries(entries, 20).factors == []

    def test_declining_frequency_compares_halves(self, assessor):
        # 5 entries split 2 recent / 3 older over a 6-day window
        result = assessor.assess_entries(daily(5), 6)
        assert result.factors == ["Declining submission frequency"]
        assert result.score == 20

    def test_even_split_is_not_declining(self, assessor):
        assert assessor.assess_entries(daily(4), 5).factors == []

    def test_negative_sentiment(self, db_service, clock):
        assessor = RiskAssessor(scorer=StubScorer(default=-0.5), db=db_service, clock=clock)
        result = assessor.assess_entries(daily(30), 30)
        assert result.factors == ["Negative sentiment detected"]
        assert result.score == 25

    def test_low_engagement_signals(self, db_service, clock):
        assessor = RiskAssessor(scorer=StubScorer(default=-0.1), db=db_service, clock=clock)
        result = assessor.assess_entries(daily(30), 30)
        assert result.factors == ["Low engagement signals"]
        assert result.score == 10

    def test_sentiment_samples_five_most_recent_eligible(self, db_service, clock):
        scorer = StubScorer(default=0.0)
        assessor = RiskAssessor(scorer=scorer, db=db_service, clock=clock)
        entries = [entry(0, eligible=False, text="- private")] + [entry(i) for i in range(1, 30)]

        assessor.assess_entries(entries, 30)

        assert len(scorer.calls) == 5
        assert not any("private" in call for call in scorer.calls)

    def test_precomputed_sentiments_skip_scoring(self, db_service, clock):
        scorer = StubScorer(default=0.9)
        assessor = RiskAssessor(scorer=scorer, db=db_service, clock=clock)

        result = assessor.assess_entries(daily(30), 30, sentiments=[-0.9] * 8)

        assert scorer.calls == []
        assert result.factors == ["Negative sentiment detected"]

    def test_high_workload(self, assessor):
        entries = daily(7, hours=11) + [entry(i) for i in range(7, 30)]
        result = assessor.assess_entries(entries, 30)
        assert result.factors == ["High workload (77h in last week)"]
        assert result.score == 15


class TestRiskLevels:
    """Tests for level bands and the reported score cap."""

    def test_high_level_from_raw_sum(self, assessor):
        # Low submission rate (30) + frequent blockers (25)
        entries = daily(10, blockers="Blocked on the vendor")
        result = assessor.assess_entries(entries, 30)
        assert result.score == 55
        assert result.level == RiskLevel.HIGH

    def test_reported_score_is_capped(self, db_service, clock):
        assessor = RiskAssessor(scorer=StubScorer(default=-0.8), db=db_service, clock=clock)
        entries = daily(5, blockers="Blocked on the vendor", hours=15)

        result = assessor.assess_entries(entries, 30)

        assert result.factors == [
            "Low submission rate (17%)",
            "Frequent blockers (100% of days)",
            "Declining submission frequency",
            "Negative sentiment detected",
            "High workload (75h in last week)",
        ]
        assert result.score == 100
        assert result.level == RiskLevel.HIGH


class TestAssessRisk:
    """Tests for the store-backed entry point."""

    def test_reads_trailing_window(self, assessor, make_entry):
        for offset in range(31):
            make_entry("alice", TODAY - timedelta(days=offset))
        make_entry("alice", TODAY - timedelta(days=45), blockers="Old blocker")

        result = assessor.assess_risk("alice")

        assert result.level == RiskLevel.LOW
        assert result.factors == []

    def test_custom_window(self, assessor, make_entry):
        for offset in range(3):
            make_entry("alice", TODAY - timedelta(days=offset))

        result = assessor.assess_risk("alice", window_days=10)

        assert result.factors[0] == "Low submission rate (30%)"

    def test_unknown_person_is_low_risk(self, assessor):
        result = assessor.assess_risk("nobody")
        assert result.level == RiskLevel.LOW
        assert result.score == 0
