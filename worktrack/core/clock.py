"""UTC clock helpers.

Timestamps are handled as naive UTC values in application code; the store may
hand back timezone-aware values depending on the backend.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.utcnow()


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
