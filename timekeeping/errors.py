"""Exception hierarchy shared by the gateway, state machine and services."""

from typing import Any, Dict, Optional

from timekeeping.constants.failure_reasons import ReasonCode, explain_reason


class TimekeepingError(Exception):
    """Base class; every error knows its reason code and user-facing message."""

    reason = ReasonCode.OTHER

    def __init__(self, detail: str = "", **context: Any):
        self.context: Dict[str, Any] = dict(context)
        if detail:
            self.context["detail"] = detail
        super().__init__(detail or self.user_message)

    @property
    def user_message(self) -> str:
        return explain_reason(self.reason, self.context)


class ValidationError(TimekeepingError):
    """Detected locally before any remote call; never retried."""


class IllegalTransitionError(ValidationError):
    reason = ReasonCode.ILLEGAL_TRANSITION

    def __init__(self, status, action, detail: str = ""):
        self.status = status
        self.action = action
        status_value = getattr(status, "value", status) if status is not None else "no longer eligible"
        action_value = getattr(action, "value", action)
        super().__init__(
            detail or f"Illegal transition: cannot '{action_value}' from {status_value}",
            status=str(status_value).lower(),
            action=action_value,
        )


class InvalidBreakError(ValidationError):
    reason = ReasonCode.INVALID_BREAK


class GatewayError(TimekeepingError):
    """Failure reported by (or while talking to) the remote entry API."""

    def __init__(self, detail: str = "", entry_id: Optional[str] = None, status_code: Optional[int] = None):
        self.entry_id = entry_id
        self.status_code = status_code
        context: Dict[str, Any] = {}
        if entry_id is not None:
            context["entry_id"] = entry_id
        super().__init__(detail, **context)


class EntryNotFoundError(GatewayError):
    reason = ReasonCode.NOT_FOUND


class UnauthorizedError(GatewayError):
    reason = ReasonCode.UNAUTHORIZED


class TransientGatewayError(GatewayError):
    """Network failure, timeout or server error. The core never retries."""

    reason = ReasonCode.TRANSIENT


class GatewayTimeoutError(TransientGatewayError):
    reason = ReasonCode.TIMEOUT
