"""
Unit tests for the entry store.

Tests cover:
- Submission defaults and normalization
- Overwrite on re-submission for the same day
- Range and count queries
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from pydantic import ValidationError

from conftest import TODAY
from pulse.schemas.request_schemas import EntrySubmission
from pulse.services.entry_service import (
    EntryService, get_entries, count_entries, get_blocker_entries, distinct_person_ids,
    latest_person_name,
)


@pytest.fixture
def entry_service(db_service, roster_cache, clock):
    return EntryService(db=db_service, roster_cache=roster_cache, clock=clock)


class TestSubmitEntry:
    """Tests for EntryService.submit_entry."""

    def test_defaults_from_clock_and_settings(self, entry_service):
        entry = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", yesterday="- shipped", today="- review",
        ))

        assert entry.id is not None
        assert entry.workspace_id == "default"
        assert entry.entry_date == TODAY
        assert entry.submitted_at == datetime(2026, 10, 23, 12, 0)
        assert entry.source == "api"

    def test_resubmission_overwrites_same_day(self, entry_service, db_service):
        first = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", today="- first draft",
        ))
        second = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", today="- final version", blockers="CI is down",
        ))

        assert second.id == first.id
        assert second.today == "- final version"
        assert second.blockers == "CI is down"
        with db_service.get_session() as session:
            assert count_entries(session, "alice", start=TODAY) == 1

    def test_text_is_stripped(self, entry_service):
        entry = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", today="  - work  ", blockers=None,
        ))
        assert entry.today == "- work"
        assert entry.blockers == ""

    def test_explicit_date_and_time(self, entry_service):
        submitted = datetime(2026, 10, 20, 7, 15, tzinfo=timezone.utc)
        entry = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", entry_date=date(2026, 10, 20), submitted_at=submitted,
        ))
        assert entry.entry_date == date(2026, 10, 20)
        assert entry.submitted_at == datetime(2026, 10, 20, 7, 15)

    def test_hours_are_bounded(self):
        with pytest.raises(ValidationError):
            EntrySubmission(person_id="alice", person_name="Alice", today_hours_estimate=25)

    def test_total_hours_treats_missing_as_zero(self, entry_service):
        entry = entry_service.submit_entry(EntrySubmission(
            person_id="alice", person_name="Alice", yesterday_hours_estimate=6.5,
        ))
        assert entry.total_hours == 6.5


class TestEntryQueries:
    """Tests for the read helpers used by the analytics passes."""

    def test_list_entries_most_recent_first(self, entry_service, make_entry):
        for offset in (0, 3, 40):
            make_entry("alice", TODAY - timedelta(days=offset))

        entries = entry_service.list_entries("alice", days=30)

        assert [e.entry_date for e in entries] == [TODAY, TODAY - timedelta(days=3)]

    def test_count_entries_end_is_exclusive(self, db_service, make_entry):
        for offset in range(10):
            make_entry("alice", TODAY - timedelta(days=offset))

        with db_service.get_session() as session:
            assert count_entries(session, "alice", start=TODAY - timedelta(days=7)) == 8
            assert count_entries(session, "alice", start=TODAY - timedelta(days=9),
                                 end=TODAY - timedelta(days=7)) == 2

    def test_get_entries_with_limit(self, db_service, make_entry):
        for offset in range(5):
            make_entry("alice", TODAY - timedelta(days=offset))

        with db_service.get_session() as session:
            entries = get_entries(session, "alice", limit=2)
        assert [e.entry_date for e in entries] == [TODAY, TODAY - timedelta(days=1)]

    def test_blocker_entries_skip_sentinels(self, db_service, make_entry):
        make_entry("alice", TODAY, blockers="none")
        make_entry("alice", TODAY - timedelta(days=1), blockers="N/A")
        make_entry("alice", TODAY - timedelta(days=2), blockers="Waiting on review")
        make_entry("bob", TODAY, blockers="")

        with db_service.get_session() as session:
            entries = get_blocker_entries(session, "default", TODAY - timedelta(days=14))
        assert [e.blockers for e in entries] == ["Waiting on review"]

    def test_distinct_people_and_latest_name(self, db_service, make_entry):
        make_entry("bob", TODAY - timedelta(days=20), person_name="Bob")
        make_entry("alice", TODAY - timedelta(days=1), person_name="Alice S.")
        make_entry("alice", TODAY, person_name="Alice Smith")

        with db_service.get_session() as session:
            assert distinct_person_ids(session, "default") == ["alice", "bob"]
            assert distinct_person_ids(session, "default", since=TODAY - timedelta(days=7)) == ["alice"]
            assert latest_person_name(session, "alice") == "Alice Smith"
            assert latest_person_name(session, "nobody") == "Unknown"
