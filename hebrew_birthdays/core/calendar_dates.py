"""Small date helpers; every "today" comparison goes through the calendar timezone."""

from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ..config import CALENDAR_TIMEZONE


def local_today(tz_name: str = CALENDAR_TIMEZONE) -> date:
    """Return today's date in the configured calendar timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def to_date(value: Any) -> Optional[date]:
    """
    Normalise a date-ish value to a `date`.

    Accepts `date`, `datetime` (start of day, time discarded) and ISO strings
    such as "2025-03-19" or "2025-03-19T00:00:00+00:00". Returns None for
    empty values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot interpret {value!r} as a date")


def to_iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
