"""Calendar-date helpers.

Receipt and production dates arrive as ``YYYY-MM-DD`` strings and are always
read as local calendar dates: only the year, month and day components are
used, so a receipt never drifts to a neighbouring day because of a UTC
conversion.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from bakery_ops.config import settings

DATE_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')


def parse_local_date(value: str) -> date:
    match = DATE_RE.match((value or '').strip())
    if not match:
        raise ValueError(f'Invalid date {value!r}, expected YYYY-MM-DD')
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return ``[00:00:00.000, 23:59:59.999]`` of ``day`` in naive local time."""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time(23, 59, 59, 999000))
    return start, end


def format_date(day: date) -> str:
    return day.strftime('%Y-%m-%d')


def local_zone() -> tzinfo | None:
    name = settings.local_timezone.strip()
    return ZoneInfo(name) if name else None


def format_local_date(moment: datetime) -> str:
    # Naive timestamps come back from SQLite; they were written as UTC.
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_date(moment.astimezone(local_zone()).date())


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)
