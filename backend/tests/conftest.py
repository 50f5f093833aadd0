"""
Pytest configuration and fixtures for Standup Pulse tests.

This module provides:
- In-memory SQLite database bound to the global DatabaseService
- A fake clock shared by the services under test
- Stub sentiment scorers
- Standup entry factory
- FastAPI test client with service overrides
"""
import os
import pytest
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing pulse modules
os.environ["DEBUG"] = "true"
os.environ["POSTGRES_USER"] = "pulse_test"
os.environ["POSTGRES_PASSWORD"] = "test_password_123"
os.environ["POSTGRES_DB"] = "pulse_test"
os.environ["CORS_ORIGINS"] = "http://localhost:3001"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["WEEK_START_DAY"] = "0"
os.environ["DEFAULT_WORKSPACE_ID"] = "default"
os.environ["RATE_LIMIT_ENABLED"] = "false"  # Disable rate limiting in tests
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SENTIMENT_MAX_WORKERS"] = "1"
os.environ.pop("SENTIMENT_API_KEY", None)

from pulse.core.cache import TTLCache
from pulse.core.resilience import circuit_breakers
from pulse.models.db_models import Base, StandupEntry
from pulse.services import db_service as db_module
from pulse.services import sentiment_service as sentiment_module
from pulse.services.db_service import DatabaseService
from pulse.services.sentiment_service import SentimentScorer

# Friday; the ISO week runs Monday 2026-10-19 to Sunday 2026-10-25
TODAY = date(2026, 10, 23)


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Callable clock returning a settable timezone-aware UTC instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.combine(TODAY, time(12, 0), tzinfo=timezone.utc))


# =============================================================================
# Sentiment stubs
# =============================================================================

class StubScorer(SentimentScorer):
    """
    Deterministic scorer: `default` for every text, unless the text contains
    one of the words in `overrides`.
    """

    def __init__(self, default: float = 0.0, overrides: Optional[Dict[str, float]] = None,
                 available: bool = True):
        self.default = default
        self.overrides = overrides or {}
        self.available = available
        self.calls: List[str] = []

    def score(self, text: Optional[str]) -> float:
        self.calls.append(text or "")
        for word, value in self.overrides.items():
            if word in (text or ""):
                return value
        return self.default


@pytest.fixture
def neutral_scorer() -> StubScorer:
    return StubScorer(default=0.0)


@pytest.fixture
def positive_scorer() -> StubScorer:
    return StubScorer(default=0.5)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_service(test_engine, monkeypatch) -> DatabaseService:
    """A DatabaseService bound to the SQLite engine and installed as the global instance."""
    service = DatabaseService()
    service.bind_engine(test_engine)
    monkeypatch.setattr(db_module, "_db_service", service)
    return service


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Fresh circuit breakers and no cached scorer for every test."""
    monkeypatch.setattr(sentiment_module, "_sentiment_scorer", None)
    for cb in circuit_breakers.values():
        cb.reset()
    yield
    for cb in circuit_breakers.values():
        cb.reset()


# =============================================================================
# Entry factory
# =============================================================================

@pytest.fixture
def make_entry(db_service) -> Callable[..., StandupEntry]:
    """
    Insert a standup entry directly.

    Defaults: one task yesterday and one today, no blocker, submitted 09:00 UTC.
    """
    def _make(person_id: str, entry_date: date, **overrides) -> StandupEntry:
        values = {
            "workspace_id": "default",
            "person_id": person_id,
            "person_name": person_id.capitalize(),
            "entry_date": entry_date,
            "yesterday": "- finished the previous task",
            "today": "- start the next task",
            "blockers": "none",
            "notes": "",
            "yesterday_hours_estimate": None,
            "today_hours_estimate": None,
            "sentiment_eligible": True,
            "source": "api",
            "submitted_at": datetime.combine(entry_date, time(9, 0)),
            "created_at": datetime.combine(entry_date, time(9, 0)),
            "updated_at": datetime.combine(entry_date, time(9, 0)),
        }
        values.update(overrides)
        with db_service.get_session() as session:
            entry = StandupEntry(**values)
            session.add(entry)
            session.flush()
        return entry
    return _make


def weekdays_between(start: date, end: date) -> List[date]:
    """Monday-to-Friday dates in [start, end]."""
    days = []
    day = start
    while day <= end:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================

class FakeMonotonic:
    """Settable seconds counter for TTLCache expiry."""

    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def cache_time() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def roster_cache(cache_time) -> TTLCache:
    return TTLCache(ttl_seconds=3600, clock=cache_time)


@pytest.fixture(scope="function")
def test_client(db_service, clock, neutral_scorer) -> Generator[TestClient, None, None]:
    """
    Test client with every service built on the fake clock and stub scorer.

    The client is not entered as a context manager, so the startup handler
    (PostgreSQL initialization, scheduler) does not run.
    """
    from pulse.main import app
    from pulse.routers import dependencies
    from pulse.services.achievement_service import AchievementEngine
    from pulse.services.alert_service import AlertEngine
    from pulse.services.batch_service import BatchService
    from pulse.services.entry_service import EntryService
    from pulse.services.metrics_service import MetricsCalculator
    from pulse.services.risk_service import RiskAssessor
    from pulse.services.roster_service import RosterService

    cache = app.state.roster_cache
    cache.clear()
    roster = RosterService(cache, db=db_service)
    risk = RiskAssessor(scorer=neutral_scorer, db=db_service, clock=clock)
    metrics = MetricsCalculator(db=db_service, scorer=neutral_scorer, risk_assessor=risk,
                                roster=roster, clock=clock)
    alerts = AlertEngine(db=db_service, scorer=neutral_scorer, clock=clock)
    achievements = AchievementEngine(db=db_service, clock=clock)

    app.dependency_overrides[dependencies.get_entry_service] = lambda: EntryService(
        db=db_service, roster_cache=cache, clock=clock)
    app.dependency_overrides[dependencies.get_risk_assessor] = lambda: risk
    app.dependency_overrides[dependencies.get_metrics_calculator] = lambda: metrics
    app.dependency_overrides[dependencies.get_alert_engine] = lambda: alerts
    app.dependency_overrides[dependencies.get_achievement_engine] = lambda: achievements
    app.dependency_overrides[dependencies.get_batch_service] = lambda: BatchService(
        roster=roster, metrics=metrics, alerts=alerts, achievements=achievements, clock=clock)

    yield TestClient(app)

    app.dependency_overrides.clear()
