from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_END_OF_DAY_RE = re.compile(r"^24:00(?::00)?$")

END_OF_DAY = 24 * 60


def parse_time_of_day(value: str | time) -> time:
    """Parse "HH:MM" or "HH:MM:SS" (24h). Seconds are dropped."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hour, minute)


def format_time_of_day(value: time) -> str:
    return value.strftime("%H:%M")


def minutes_since_midnight(value: str | time) -> int:
    """Minutes after 00:00. "24:00" is accepted as the end of the day."""
    if isinstance(value, str) and _END_OF_DAY_RE.match(value.strip()):
        return END_OF_DAY
    t = parse_time_of_day(value)
    return t.hour * 60 + t.minute


def time_from_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week_index(day: date) -> int:
    """0 = Sunday ... 6 = Saturday, the convention WeeklyAvailability rows use."""
    return (day.weekday() + 1) % 7


def appointment_start(day: date, time_of_day: str, timezone: ZoneInfo) -> datetime:
    return datetime.combine(day, parse_time_of_day(time_of_day), tzinfo=timezone)


def safe_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except Exception:
        return ZoneInfo("UTC")


def hours_until(start: datetime, now: datetime) -> float:
    return (start - now) / timedelta(hours=1)
