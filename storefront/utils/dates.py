"""Datetime helpers. Windows are stored as naive UTC."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(value):
    """
    Parse an ISO-8601 string (a trailing 'Z' is accepted) into naive UTC.

    Returns None for empty values; raises ValueError for malformed ones.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_naive_utc(value)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return as_naive_utc(datetime.fromisoformat(text))
