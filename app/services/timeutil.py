"""UTC helpers. SQLite hands back naive datetimes even for timezone=True columns."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(value: datetime | None, now: datetime | None = None) -> bool:
    if value is None:
        return False
    return as_utc(value) < (now or utcnow())
