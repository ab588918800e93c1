from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; the API only ever sends UTC instants."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, truncated toward zero. May be negative."""
    return int((ensure_aware(end) - ensure_aware(start)).total_seconds())


def to_api_timestamp(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with milliseconds and a 'Z' suffix."""
    utc_value = ensure_aware(value).astimezone(timezone.utc)
    return utc_value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc_value.microsecond // 1000:03d}Z"
