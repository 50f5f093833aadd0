"""
Team roster - the people who have ever submitted in a workspace.

The roster is served through an explicit TTLCache handed in by the caller.
main.py builds one cache per process; tests pass a cache with a fake clock.
"""
import logging
from typing import List, Optional

from sqlalchemy import select

from pulse.core.cache import TTLCache
from pulse.models.db_models import StandupEntry
from pulse.services.db_service import DatabaseService, get_db_service

logger = logging.getLogger(__name__)


def roster_key(workspace_id: str) -> str:
    return f"roster:{workspace_id}"


class RosterService:
    """Active-person roster per workspace."""

    def __init__(self, cache: TTLCache, db: Optional[DatabaseService] = None):
        self.cache = cache
        self.db = db or get_db_service()

    def _load(self, workspace_id: str) -> List[str]:
        with self.db.get_session() as session:
            stmt = (
                select(StandupEntry.person_id)
                .where(StandupEntry.workspace_id == workspace_id)
                .distinct()
                .order_by(StandupEntry.person_id)
            )
            people = list(session.execute(stmt).scalars())
        logger.info(f"Loaded roster for workspace {workspace_id}: {len(people)} people")
        return people

    def get_roster(self, workspace_id: str) -> List[str]:
        """Person ids for the workspace, cached for the cache's TTL."""
        return self.cache.get_or_load(roster_key(workspace_id), lambda: self._load(workspace_id))

    def invalidate(self, workspace_id: str):
        self.cache.delete(roster_key(workspace_id))
