import logging
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional

from timekeeping.connectors.base import BaseEntryGateway
from timekeeping.schemas.time_entry import EntryAction, ManualEntryDraft, TimeEntry, TimeEntryUpdate
from timekeeping.services.state_machine import apply_local_transition, ensure_break_allowed, validate_break_window
from timekeeping.utils.timestamps import utc_now

log = logging.getLogger(__name__)


class EntrySnapshotStore:
    """
    Last server-confirmed snapshots, plus the ids the UI currently shows.

    Writers are the entry service and the presentation layer; the ticker only
    reads. All access is serialized.
    """

    def __init__(self, entries: Optional[Iterable[TimeEntry]] = None):
        self._lock = RLock()
        self._entries: Dict[str, TimeEntry] = {}
        self._visible: List[str] = []
        for entry in entries or []:
            self._entries[entry.id] = entry

    def get(self, entry_id: str) -> Optional[TimeEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def put(self, entry: TimeEntry) -> None:
        with self._lock:
            self._entries[entry.id] = entry

    def replace_all(self, entries: Iterable[TimeEntry]) -> None:
        with self._lock:
            self._entries = {entry.id: entry for entry in entries}

    def remove(self, entry_id: str) -> None:
        with self._lock:
            self._entries.pop(entry_id, None)
            self._visible = [visible_id for visible_id in self._visible if visible_id != entry_id]

    def set_visible(self, entry_ids: Iterable[str]) -> None:
        with self._lock:
            self._visible = list(dict.fromkeys(entry_ids))

    def visible(self) -> List[TimeEntry]:
        """Snapshots of the visible entries that are known, in display order."""
        with self._lock:
            return [self._entries[entry_id] for entry_id in self._visible if entry_id in self._entries]

    def all(self) -> List[TimeEntry]:
        with self._lock:
            return list(self._entries.values())


class TimeEntryService:
    """
    Single-entry lifecycle operations against the gateway.

    A transition is validated locally first, so an illegal request fails
    without a network call. The local snapshot is only replaced once the
    server has confirmed; until then readers keep the previous snapshot.
    """

    def __init__(
        self,
        gateway: BaseEntryGateway,
        store: Optional[EntrySnapshotStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.gateway = gateway
        self.store = store if store is not None else EntrySnapshotStore()
        self._clock = clock

    async def refresh(self, entry_id: str) -> TimeEntry:
        entry = await self.gateway.fetch_entry(entry_id)
        self.store.put(entry)
        return entry

    async def refresh_active(self) -> List[TimeEntry]:
        entries = await self.gateway.list_active_entries()
        for entry in entries:
            self.store.put(entry)
        return entries

    async def _confirmed(self, entry_id: str) -> TimeEntry:
        entry = self.store.get(entry_id)
        if entry is None:
            entry = await self.refresh(entry_id)
        return entry

    async def transition(self, entry_id: str, action: EntryAction) -> TimeEntry:
        current = await self._confirmed(entry_id)
        # Raises IllegalTransitionError before anything is sent.
        apply_local_transition(current, action, self._clock())

        confirmed = await self.gateway.apply_transition(entry_id, EntryAction(action))
        self.store.put(confirmed)
        log.debug(
            f"Entry {entry_id}: {current.status.value} -> {confirmed.status.value} "
            f"(total_duration={confirmed.total_duration})"
        )
        return confirmed

    async def pause(self, entry_id: str) -> TimeEntry:
        return await self.transition(entry_id, EntryAction.PAUSE)

    async def resume(self, entry_id: str) -> TimeEntry:
        return await self.transition(entry_id, EntryAction.RESUME)

    async def stop(self, entry_id: str) -> TimeEntry:
        return await self.transition(entry_id, EntryAction.STOP)

    async def complete(self, entry_id: str) -> TimeEntry:
        return await self.transition(entry_id, EntryAction.COMPLETE)

    async def add_break(
        self,
        entry_id: str,
        started_at: datetime,
        ended_at: datetime,
        description: Optional[str] = None,
    ) -> TimeEntry:
        validate_break_window(started_at, ended_at)
        ensure_break_allowed(await self._confirmed(entry_id))
        confirmed = await self.gateway.add_break(entry_id, started_at, ended_at, description)
        self.store.put(confirmed)
        return confirmed

    async def delete(self, entry_id: str) -> None:
        await self.gateway.delete_entry(entry_id)
        self.store.remove(entry_id)

    async def update(self, entry_id: str, update: TimeEntryUpdate) -> TimeEntry:
        """Apply an edit, then re-read the entry so the store holds the server's version."""
        await self.gateway.update_entry(entry_id, update)
        return await self.refresh(entry_id)

    async def unarchive(self, entry_id: str) -> TimeEntry:
        await self.gateway.unarchive_entry(entry_id)
        return await self.refresh(entry_id)

    async def add_manual(self, draft: ManualEntryDraft) -> TimeEntry:
        entry_id = await self.gateway.add_manual_entry(draft)
        return await self.refresh(entry_id)
