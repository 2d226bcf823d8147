from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

DEFAULT_TZ = "Asia/Kolkata"


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today(tz_name: str | None = None) -> date:
    """Current calendar date in the institute's timezone."""
    return datetime.now(ZoneInfo(tz_name or DEFAULT_TZ)).date()


def parse_date(value: Any) -> date | None:
    """Parse a calendar date from a date, datetime or ISO-8601 string.

    Accepts both plain dates (``2024-01-02``) and the full timestamps the
    dashboard sends (``2024-01-02T00:00:00.000Z``); the time part is dropped.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_due_date(value: Any) -> str:
    """Indian short date (dd/mm/YYYY) used in SMS text."""
    d = parse_date(value)
    if d is None:
        return "soon"
    return d.strftime("%d/%m/%Y")


def isoformat_or_none(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)
