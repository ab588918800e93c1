from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timekeeping.constants.failure_reasons import ReasonCode


class BulkActionKind(str, Enum):
    DELETE = "delete"
    REASSIGN = "reassign"
    REFRESH_METADATA = "refresh_metadata"
    STOP = "stop"


# Verb used in "Failed to <verb> N entries." messages.
_FAILURE_VERBS = {
    BulkActionKind.DELETE: "delete",
    BulkActionKind.REASSIGN: "update",
    BulkActionKind.REFRESH_METADATA: "refresh",
    BulkActionKind.STOP: "stop",
}


class BulkAction(BaseModel):
    """One action applied uniformly to every entry of a bulk operation."""

    model_config = ConfigDict(frozen=True)

    kind: BulkActionKind
    collection_ids: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_collections(self):
        if self.kind == BulkActionKind.REASSIGN and self.collection_ids is None:
            raise ValueError("reassign requires collection_ids (an empty list clears all collections)")
        if self.kind != BulkActionKind.REASSIGN and self.collection_ids is not None:
            raise ValueError(f"collection_ids only apply to reassign, not {self.kind.value}")
        return self

    @classmethod
    def delete(cls) -> "BulkAction":
        return cls(kind=BulkActionKind.DELETE)

    @classmethod
    def reassign(cls, collection_ids: List[str]) -> "BulkAction":
        return cls(kind=BulkActionKind.REASSIGN, collection_ids=list(collection_ids))

    @classmethod
    def refresh_metadata(cls) -> "BulkAction":
        return cls(kind=BulkActionKind.REFRESH_METADATA)

    @classmethod
    def stop(cls) -> "BulkAction":
        return cls(kind=BulkActionKind.STOP)

    @property
    def failure_verb(self) -> str:
        return _FAILURE_VERBS[self.kind]


class ItemOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: str
    succeeded: bool
    reason: Optional[ReasonCode] = None
    detail: Optional[str] = None


class BulkProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed: int = 0
    total: int

    @property
    def is_terminal(self) -> bool:
        return self.completed >= self.total


class BulkResult(BaseModel):
    """Aggregate of a finished bulk operation; independent of completion order."""

    model_config = ConfigDict(frozen=True)

    action: BulkAction
    succeeded_ids: FrozenSet[str] = Field(default_factory=frozenset)
    failed_count: int = 0
    total: int = 0
    outcomes: Dict[str, ItemOutcome] = Field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return self.failed_count > 0

    @property
    def failed_ids(self) -> FrozenSet[str]:
        return frozenset(entry_id for entry_id, outcome in self.outcomes.items() if not outcome.succeeded)

    def failure_message(self, noun: str = "entry", plural: str = "entries") -> Optional[str]:
        """'Failed to delete 2 entries.' or None when everything succeeded."""
        if not self.has_failures:
            return None
        word = noun if self.failed_count == 1 else plural
        return f"Failed to {self.action.failure_verb} {self.failed_count} {word}."
