from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utctoday() -> date:
    return utcnow().date()


def isoformat_z(value: datetime) -> str:
    """ISO-8601 with a trailing Z, the shape HTTP callers expect for timestamps."""
    return value.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"
