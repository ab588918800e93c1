"""
Lifecycle rules for time entries.

RUNNING <-> PAUSED, either of them -> STOPPED, STOPPED -> COMPLETED.
COMPLETED is terminal. Applying a transition here only computes the
provisional snapshot; the server commits it.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Tuple, Union

from timekeeping.errors import IllegalTransitionError, InvalidBreakError
from timekeeping.schemas.time_entry import EntryAction, EntryStatus, TimeEntry
from timekeeping.utils.timestamps import ensure_aware, seconds_between

log = logging.getLogger(__name__)

TRANSITIONS: Dict[Tuple[EntryStatus, EntryAction], EntryStatus] = {
    (EntryStatus.RUNNING, EntryAction.PAUSE): EntryStatus.PAUSED,
    (EntryStatus.PAUSED, EntryAction.RESUME): EntryStatus.RUNNING,
    (EntryStatus.RUNNING, EntryAction.STOP): EntryStatus.STOPPED,
    (EntryStatus.PAUSED, EntryAction.STOP): EntryStatus.STOPPED,
    (EntryStatus.STOPPED, EntryAction.COMPLETE): EntryStatus.COMPLETED,
}

StatusLike = Union[EntryStatus, TimeEntry]


def _status(value: StatusLike) -> EntryStatus:
    return value.status if isinstance(value, TimeEntry) else value


def can_pause(value: StatusLike) -> bool:
    return _status(value) == EntryStatus.RUNNING


def can_resume(value: StatusLike) -> bool:
    return _status(value) == EntryStatus.PAUSED


def can_stop(value: StatusLike) -> bool:
    return _status(value) in (EntryStatus.RUNNING, EntryStatus.PAUSED)


def can_complete(value: StatusLike) -> bool:
    return _status(value) == EntryStatus.STOPPED


def is_active(value: StatusLike) -> bool:
    return _status(value) in (EntryStatus.RUNNING, EntryStatus.PAUSED)


def legal_actions(value: StatusLike) -> FrozenSet[EntryAction]:
    status = _status(value)
    return frozenset(action for (source, action) in TRANSITIONS if source == status)


def ensure_transition_allowed(value: StatusLike, action: EntryAction) -> EntryStatus:
    """Return the target status or raise IllegalTransitionError."""
    status = _status(value)
    try:
        action = EntryAction(action)
    except ValueError:
        raise IllegalTransitionError(status, action)
    target = TRANSITIONS.get((status, action))
    if target is None:
        log.debug(f"Rejected transition '{action.value}' from {status.value}")
        raise IllegalTransitionError(status, action)
    return target


def apply_local_transition(entry: TimeEntry, action: EntryAction, now: datetime) -> TimeEntry:
    """
    Compute the snapshot the server is expected to produce for ``action``.

    The input snapshot is left untouched. Illegal (status, action) pairs raise
    IllegalTransitionError.
    """
    target = ensure_transition_allowed(entry, action)
    action = EntryAction(action)
    now = ensure_aware(now)
    updates = {"status": target}

    if action in (EntryAction.PAUSE, EntryAction.STOP) and entry.status == EntryStatus.RUNNING:
        running = max(0, seconds_between(entry.resume_reference, now))
        updates["total_duration"] = entry.total_duration + running

    if action == EntryAction.PAUSE:
        updates["paused_at"] = now
    elif action == EntryAction.RESUME:
        updates["last_resumed_at"] = now
    elif action == EntryAction.STOP:
        updates["stopped_at"] = now
    elif action == EntryAction.COMPLETE:
        updates["completed_at"] = now

    return entry.model_copy(update=updates)


def validate_break_window(started_at: datetime, ended_at: datetime) -> None:
    if ensure_aware(ended_at) <= ensure_aware(started_at):
        raise InvalidBreakError(
            f"Break must end after it starts (started_at={started_at.isoformat()}, ended_at={ended_at.isoformat()})"
        )


def ensure_break_allowed(entry: TimeEntry) -> None:
    """Breaks can only be added while the entry is running or paused."""
    if not is_active(entry):
        log.debug(f"Rejected break on entry {entry.id} in status {entry.status.value}")
        raise IllegalTransitionError(
            entry.status,
            "add a break to",
            detail=f"Breaks can only be added to running or paused entries (entry is {entry.status.value})",
        )
