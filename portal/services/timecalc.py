from __future__ import annotations

import calendar
from datetime import datetime, timezone

from ..core.errors import ValidationFailed


def utcnow() -> datetime:
    """Naive UTC ``datetime``; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_to_hours(minutes: int | None) -> float:
    """Convert minutes to hours rounded to one decimal place."""
    return round((minutes or 0) / 60, 1)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Shift ``value`` by whole calendar months, clamping the day of month.

    2024-01-31 plus one month is 2024-02-29, not an overflow into March.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def cycle_end(cycle_start: datetime) -> datetime:
    return add_months(cycle_start, 1)


def cycle_is_due(cycle_start: datetime | None, now: datetime) -> bool:
    """Return True once a full billing month has elapsed since ``cycle_start``."""
    if cycle_start is None:
        return False
    return now >= cycle_end(cycle_start)


def parse_datetime(value: object) -> datetime | None:
    """Accept ``datetime`` objects or ISO-8601 strings; return naive UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationFailed(f"Invalid date '{value}'") from exc
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
