"""
Time helpers.

All timestamps are stored as naive UTC. Quiz and user timezones are IANA names
used only for display and for interpreting educator input.
"""

from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc).replace(tzinfo=None)


def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def to_naive_utc(value: Optional[datetime], tz_name: Optional[str] = None) -> Optional[datetime]:
    """
    Normalise a datetime to naive UTC.

    Aware values are converted. Naive values are read as wall-clock time in
    ``tz_name`` when one is given, otherwise as UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        if tz_name and is_valid_timezone(tz_name):
            value = value.replace(tzinfo=ZoneInfo(tz_name))
        else:
            return value
    return value.astimezone(dt_timezone.utc).replace(tzinfo=None)


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO string (``Z`` suffix allowed) to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=dt_timezone.utc).isoformat().replace("+00:00", "Z")
