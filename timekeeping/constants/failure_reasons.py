from enum import Enum
from typing import Dict


class ReasonCode(Enum):
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    INVALID_BREAK = "INVALID_BREAK"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    TRANSIENT = "TRANSIENT"
    TIMEOUT = "TIMEOUT"
    OTHER = "OTHER"


# Validation failures point at stale UI state rather than connectivity.
VALIDATION_REASONS = frozenset({ReasonCode.ILLEGAL_TRANSITION, ReasonCode.INVALID_BREAK})


def explain_reason(code: ReasonCode, context: Dict) -> str:
    templates = {
        ReasonCode.ILLEGAL_TRANSITION: "Cannot {action} a time entry that is {status}. Refresh and try again.",
        ReasonCode.INVALID_BREAK: "Break end time must be after its start time.",
        ReasonCode.NOT_FOUND: "Time entry {entry_id} not found.",
        ReasonCode.UNAUTHORIZED: "Session expired. Please sign in again.",
        ReasonCode.TRANSIENT: "Could not reach server: {detail}.",
        ReasonCode.TIMEOUT: "The server did not respond in time.",
        ReasonCode.OTHER: "Unexpected error: {detail}.",
    }
    template = templates.get(code, templates[ReasonCode.OTHER])
    values = {"action": "", "status": "", "entry_id": "", **context}
    values.setdefault("detail", "")
    return template.format(**values)
