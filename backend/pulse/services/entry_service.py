"""
Entry Store - one standup entry per person per calendar day

Features:
- Submission as an atomic upsert keyed by (person, date)
- Range, count and distinct-person queries used by the analytics passes
- Roster cache invalidation on submission
"""
import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from pulse.core.cache import TTLCache
from pulse.core.config import get_settings
from pulse.models.db_models import StandupEntry
from pulse.schemas.request_schemas import EntrySubmission
from pulse.services.calculations import utc_now, to_naive_utc, local_today
from pulse.services.db_service import DatabaseService, get_db_service, upsert
from pulse.services.roster_service import roster_key
from pulse.services.text_analysis import has_blocker

logger = logging.getLogger(__name__)

ENTRY_KEY_COLUMNS = ("person_id", "entry_date")
ENTRY_UPDATE_COLUMNS = (
    "workspace_id", "person_name", "yesterday", "today", "blockers", "notes",
    "yesterday_hours_estimate", "today_hours_estimate", "sentiment_eligible",
    "source", "submitted_at", "updated_at",
)


# =============================================================================
# Queries
# =============================================================================

def get_entries(
    session: Session,
    person_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: Optional[int] = None,
) -> List[StandupEntry]:
    """Entries for a person within an inclusive date range, most recent first."""
    stmt = select(StandupEntry).where(StandupEntry.person_id == person_id)
    if start is not None:
        stmt = stmt.where(StandupEntry.entry_date >= start)
    if end is not None:
        stmt = stmt.where(StandupEntry.entry_date <= end)
    stmt = stmt.order_by(StandupEntry.entry_date.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(session.execute(stmt).scalars())


def count_entries(session: Session, person_id: str, start: date, end: Optional[date] = None) -> int:
    """Entries for a person with start <= date (< end when end is given)."""
    stmt = select(func.count(StandupEntry.id)).where(
        StandupEntry.person_id == person_id,
        StandupEntry.entry_date >= start,
    )
    if end is not None:
        stmt = stmt.where(StandupEntry.entry_date < end)
    return session.execute(stmt).scalar() or 0


def get_workspace_entries(session: Session, workspace_id: str, since: date) -> List[StandupEntry]:
    """All entries in a workspace since a date, grouped naturally by person then recency."""
    stmt = (
        select(StandupEntry)
        .where(StandupEntry.workspace_id == workspace_id, StandupEntry.entry_date >= since)
        .order_by(StandupEntry.person_id, StandupEntry.entry_date.desc())
    )
    return list(session.execute(stmt).scalars())


def get_blocker_entries(session: Session, workspace_id: str, since: date) -> List[StandupEntry]:
    """Entries since a date whose blocker text is a real blocker."""
    return [e for e in get_workspace_entries(session, workspace_id, since) if has_blocker(e.blockers)]


def distinct_person_ids(session: Session, workspace_id: str, since: Optional[date] = None) -> List[str]:
    stmt = select(StandupEntry.person_id).where(StandupEntry.workspace_id == workspace_id)
    if since is not None:
        stmt = stmt.where(StandupEntry.entry_date >= since)
    stmt = stmt.distinct().order_by(StandupEntry.person_id)
    return list(session.execute(stmt).scalars())


def latest_person_name(session: Session, person_id: str) -> str:
    stmt = (
        select(StandupEntry.person_name)
        .where(StandupEntry.person_id == person_id)
        .order_by(StandupEntry.entry_date.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar() or "Unknown"


# =============================================================================
# Submission
# =============================================================================

class EntryService:
    """Writes standup entries and serves per-person history."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        roster_cache: Optional[TTLCache] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db or get_db_service()
        self.roster_cache = roster_cache
        self.clock = clock
        self.settings = get_settings()

    def submit_entry(self, submission: EntrySubmission, source: str = "api") -> StandupEntry:
        """
        Store a submission, overwriting any earlier entry for the same day.

        The row id is kept on re-submission.
        """
        now = self.clock()
        workspace_id = submission.workspace_id or self.settings.default_workspace_id
        entry_date = submission.entry_date or local_today(now, self.settings.timezone)
        submitted_at = to_naive_utc(submission.submitted_at or now)
        stored_now = to_naive_utc(now)

        values = {
            "workspace_id": workspace_id,
            "person_id": submission.person_id,
            "person_name": submission.person_name,
            "entry_date": entry_date,
            "yesterday": submission.yesterday,
            "today": submission.today,
            "blockers": submission.blockers,
            "notes": submission.notes,
            "yesterday_hours_estimate": submission.yesterday_hours_estimate,
            "today_hours_estimate": submission.today_hours_estimate,
            "sentiment_eligible": submission.sentiment_eligible,
            "source": source,
            "submitted_at": submitted_at,
            "created_at": stored_now,
            "updated_at": stored_now,
        }

        with self.db.get_session() as session:
            upsert(session, StandupEntry, values, ENTRY_KEY_COLUMNS, ENTRY_UPDATE_COLUMNS)
            entry = session.execute(
                select(StandupEntry).where(
                    StandupEntry.person_id == submission.person_id,
                    StandupEntry.entry_date == entry_date,
                )
            ).scalar_one()

        if self.roster_cache is not None:
            self.roster_cache.delete(roster_key(workspace_id))

        logger.info(
            f"Stored standup entry for {submission.person_id} on {entry_date}",
            extra={"person_id": submission.person_id, "workspace_id": workspace_id},
        )
        return entry

    def list_entries(self, person_id: str, days: int = 30) -> List[StandupEntry]:
        """A person's entries over the trailing `days`, most recent first."""
        today = local_today(self.clock(), self.settings.timezone)
        with self.db.get_session() as session:
            return get_entries(session, person_id, start=today - timedelta(days=days))
