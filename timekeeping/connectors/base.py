from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from timekeeping.schemas.filters import TimeEntryFilters
from timekeeping.schemas.time_entry import EntryAction, ManualEntryDraft, TimeEntry, TimeEntryDraft, TimeEntryUpdate
from timekeeping.services.state_machine import validate_break_window


class BaseEntryGateway(ABC):
    """
    Abstract contract of the remote time-entry API.

    Implementations raise EntryNotFoundError, UnauthorizedError or
    TransientGatewayError on failure, and IllegalTransitionError when the
    server rejects a lifecycle transition.
    """

    @abstractmethod
    async def fetch_entry(self, entry_id: str) -> TimeEntry:
        """Fetches a single time entry."""
        pass

    @abstractmethod
    async def list_entries(self, filters: Optional[TimeEntryFilters] = None) -> List[TimeEntry]:
        """Lists time entries matching the filters."""
        pass

    @abstractmethod
    async def list_active_entries(self) -> List[TimeEntry]:
        """Lists running and paused time entries."""
        pass

    @abstractmethod
    async def create_entry(self, draft: TimeEntryDraft) -> str:
        """Starts a new timer and returns its id."""
        pass

    @abstractmethod
    async def add_manual_entry(self, draft: ManualEntryDraft) -> str:
        """Logs a finished entry from a duration and returns its id."""
        pass

    @abstractmethod
    async def update_entry(self, entry_id: str, update: TimeEntryUpdate) -> None:
        """Edits name, description, tags, location, billing or the time window."""
        pass

    @abstractmethod
    async def unarchive_entry(self, entry_id: str) -> None:
        pass

    @abstractmethod
    async def apply_transition(self, entry_id: str, action: EntryAction) -> TimeEntry:
        """Commits a lifecycle transition and returns the confirmed snapshot."""
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> None:
        """Deletes a time entry."""
        pass

    @abstractmethod
    async def update_collections(self, entry_id: str, collection_ids: List[str]) -> None:
        """Replaces the collections an entry belongs to."""
        pass

    @abstractmethod
    async def request_metadata_refresh(self, entry_id: str) -> None:
        """Asks the server to re-extract the entry's metadata."""
        pass

    async def add_break(
        self,
        entry_id: str,
        started_at: datetime,
        ended_at: datetime,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """Adds a closed break. The window is validated before any call is made."""
        validate_break_window(started_at, ended_at)
        if description is not None:
            description = description.strip() or None
        return await self._add_break(entry_id, started_at, ended_at, description)

    @abstractmethod
    async def _add_break(
        self,
        entry_id: str,
        started_at: datetime,
        ended_at: datetime,
        description: Optional[str],
    ) -> TimeEntry:
        pass

    async def close(self) -> None:
        """Releases transport resources."""
        pass
