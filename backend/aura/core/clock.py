from datetime import datetime, timezone

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_aware_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def as_naive_utc(value: datetime) -> datetime:
    return as_aware_utc(value).replace(tzinfo=None)
