"""
Pure duration arithmetic over time-entry snapshots.

The server's ``total_duration`` is the source of truth; while an entry is
running, the device adds the time since the last resume. Breaks are
subtracted afterwards. Every function takes ``now`` explicitly so results
depend only on their arguments.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from timekeeping.schemas.time_entry import EntryStatus, TimeEntry, TimeEntryBreak
from timekeeping.utils.timestamps import seconds_between


def total_break_seconds(breaks: Iterable[TimeEntryBreak], now: datetime) -> int:
    """
    Sum of break time in seconds.

    A cached ``duration`` wins over timestamps, to tolerate server-side rounding.
    Without one, a break with no ``ended_at`` is ongoing and counts up to
    ``now``; a closed break without a cached duration contributes nothing.
    Each term is clamped at zero.
    """
    total = 0
    for break_record in breaks:
        if break_record.duration is not None:
            total += max(0, break_record.duration)
        elif break_record.ended_at is None:
            total += max(0, seconds_between(break_record.started_at, now))
    return total


def elapsed_seconds(entry: TimeEntry, now: datetime) -> int:
    """Live elapsed seconds for display, net of breaks, never negative."""
    if entry.status == EntryStatus.RUNNING:
        running = max(0, seconds_between(entry.resume_reference, now))
        base = entry.total_duration + running
    else:
        base = entry.total_duration

    return max(0, base - total_break_seconds(entry.breaks, now))


def format_duration(seconds: int) -> str:
    """HH:MM:SS from one hour upwards, MM:SS below."""
    if seconds < 0:
        return "00:00:00"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_duration_human(seconds: int) -> str:
    """Compact form for summaries: '2h 15m', '2h', '45m', '30s'."""
    if seconds <= 0:
        return "0s"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0 and minutes > 0:
        return f"{hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h"
    if minutes > 0:
        return f"{minutes}m"
    return f"{secs}s"


@dataclass(frozen=True)
class EntrySummary:
    total_entries: int
    active_entries: int
    total_seconds: int

    @property
    def human_total(self) -> str:
        return format_duration_human(self.total_seconds)


def summarize_entries(entries: Iterable[TimeEntry], now: datetime) -> EntrySummary:
    """Counts and combined live duration of a list of entries."""
    total_entries = 0
    active_entries = 0
    total_seconds = 0
    for entry in entries:
        total_entries += 1
        if entry.status in (EntryStatus.RUNNING, EntryStatus.PAUSED):
            active_entries += 1
        total_seconds += elapsed_seconds(entry, now)
    return EntrySummary(
        total_entries=total_entries,
        active_entries=active_entries,
        total_seconds=total_seconds,
    )
