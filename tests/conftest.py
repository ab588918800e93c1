from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from timekeeping.connectors.base import BaseEntryGateway
from timekeeping.schemas.time_entry import EntryStatus, TimeEntry, TimeEntryBreak

T0 = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def make_entry():
    def _make(status: EntryStatus = EntryStatus.RUNNING, **overrides) -> TimeEntry:
        data = {
            "id": "entry-1",
            "name": "Client support",
            "status": status,
            "total_duration": 0,
            "started_at": T0,
        }
        data.update(overrides)
        return TimeEntry(**data)

    return _make


@pytest.fixture
def make_break():
    def _make(start_offset: int, end_offset=None, duration=None, break_id: str = "break-1") -> TimeEntryBreak:
        return TimeEntryBreak(
            id=break_id,
            started_at=T0 + timedelta(seconds=start_offset),
            ended_at=T0 + timedelta(seconds=end_offset) if end_offset is not None else None,
            duration=duration,
        )

    return _make


@pytest.fixture
def gateway() -> AsyncMock:
    return AsyncMock(spec=BaseEntryGateway)
