from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from timekeeping.utils.timestamps import ensure_aware, to_api_timestamp


class EntryStatus(str, Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class EntryAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    COMPLETE = "complete"


class ApiModel(BaseModel):
    """Immutable snapshot populated from the API's camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class TimeEntryBreak(ApiModel):
    id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Cached seconds; authoritative when present")
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("started_at", "ended_at", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    @property
    def is_ongoing(self) -> bool:
        return self.ended_at is None and self.duration is None


class TimeEntryUser(ApiModel):
    id: str
    name: Optional[str] = None
    email: str


class TimeEntry(ApiModel):
    """
    Read-only snapshot of a time entry as last confirmed by the server.

    ``total_duration`` is the accumulated duration as of the last lifecycle
    event; it never includes time since ``last_resumed_at`` while running.
    """

    id: str
    name: str = ""
    description: Optional[str] = None
    status: EntryStatus
    tags: List[str] = Field(default_factory=list)
    billable: bool = False
    location: Optional[str] = None
    timezone: Optional[str] = None

    total_duration: int = 0
    started_at: datetime
    paused_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_resumed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    user_id: Optional[str] = None
    ticket_id: Optional[str] = None
    collection_ids: List[str] = Field(default_factory=list)

    user: Optional[TimeEntryUser] = None
    breaks: List[TimeEntryBreak] = Field(default_factory=list)

    @field_validator("tags", "collection_ids", "breaks", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return [] if value is None else value

    @field_validator(
        "started_at", "paused_at", "stopped_at", "completed_at",
        "last_resumed_at", "archived_at", "created_at", "updated_at",
    )
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    @property
    def resume_reference(self) -> datetime:
        """Instant the current running stretch began."""
        return self.last_resumed_at or self.started_at

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


class TimeEntryDraft(ApiModel):
    """Input for starting a new timer."""

    name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    billable: Optional[bool] = None
    ticket_id: Optional[str] = None


class TimeEntryUpdate(ApiModel):
    """Partial edit of an entry; unset fields are left alone by the server."""

    name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    billable: Optional[bool] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.started_at and self.stopped_at and ensure_aware(self.stopped_at) <= ensure_aware(self.started_at):
            raise ValueError("stopped_at must be after started_at")
        return self

    @field_serializer("started_at", "stopped_at")
    def _api_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_api_timestamp(value) if value is not None else None


class ManualEntryDraft(ApiModel):
    """A finished entry logged after the fact, given as a duration and a start time."""

    name: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    billable: Optional[bool] = None
    hours: int = Field(0, ge=0)
    minutes: int = Field(0, ge=0, le=59)
    seconds: int = Field(0, ge=0, le=59)
    started_at: datetime

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    @model_validator(mode="after")
    def _require_duration(self):
        if self.total_seconds <= 0:
            raise ValueError("manual entries need a positive duration")
        return self

    @field_serializer("started_at")
    def _api_timestamp(self, value: datetime) -> str:
        return to_api_timestamp(value)

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds
