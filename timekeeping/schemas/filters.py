from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel

from timekeeping.utils.timestamps import to_api_timestamp


class StatusFilter(str, Enum):
    ALL = "ALL"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"
    ACTIVE = "ACTIVE"


class SortOption(str, Enum):
    NEWEST_FIRST = "createdAt-desc"
    OLDEST_FIRST = "createdAt-asc"
    LONGEST_FIRST = "totalDuration-desc"
    SHORTEST_FIRST = "totalDuration-asc"


class ArchiveFilter(str, Enum):
    UNARCHIVED = "unarchived"
    ARCHIVED = "archived"


class TimeEntryFilters(BaseModel):
    status: StatusFilter = StatusFilter.ALL
    sort: SortOption = SortOption.NEWEST_FIRST
    archive: ArchiveFilter = ArchiveFilter.UNARCHIVED
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def to_query_params(self) -> List[Tuple[str, str]]:
        """Multi-valued query parameters; ACTIVE expands to RUNNING and PAUSED."""
        params: List[Tuple[str, str]] = []
        if self.status == StatusFilter.ACTIVE:
            params.append(("status", StatusFilter.RUNNING.value))
            params.append(("status", StatusFilter.PAUSED.value))
        elif self.status != StatusFilter.ALL:
            params.append(("status", self.status.value))

        params.append(("sort", self.sort.value))
        params.append(("archive", self.archive.value))

        if self.date_from:
            params.append(("dateFrom", to_api_timestamp(self.date_from)))
        if self.date_to:
            params.append(("dateTo", to_api_timestamp(self.date_to)))
        return params
