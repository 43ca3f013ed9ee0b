"""
Time rules and validation service.
Shift time parsing, local/UTC conversions and attendance-day helpers.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple
import pytz

from ..config import settings


def parse_shift_time(value: Optional[str], fallback: str = "17:00") -> time:
    """
    Parse an "HH:MM" shift time.

    Anything that is not exactly two integer parts with hour 0-23 and minute
    0-59 falls back to ``fallback``.
    """
    parsed = _parse_hh_mm(value)
    if parsed is None:
        parsed = _parse_hh_mm(fallback) or (17, 0)
    return time(hour=parsed[0], minute=parsed[1])


def _parse_hh_mm(value) -> Optional[Tuple[int, int]]:
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except ValueError:
        return None
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        return None
    return hour, minute


def is_valid_shift_time(value: Optional[str]) -> bool:
    return _parse_hh_mm(value) is not None


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC (SQLite returns them naive) and normalise aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def local_to_utc(local_datetime: datetime, timezone_str: Optional[str] = None) -> datetime:
    """
    Convert local datetime to UTC.

    Args:
        local_datetime: Local datetime (naive)
        timezone_str: Timezone string (e.g., "Asia/Karachi"), defaults to settings.tz_default

    Returns:
        UTC datetime (timezone-aware)
    """
    tz = pytz.timezone(timezone_str or settings.tz_default)
    if local_datetime.tzinfo is None:
        local_dt = tz.localize(local_datetime)
    else:
        local_dt = local_datetime.astimezone(tz)
    return local_dt.astimezone(pytz.UTC)


def utc_to_local(utc_datetime: datetime, timezone_str: Optional[str] = None) -> datetime:
    """Convert a UTC datetime (naive means UTC) to the local timezone."""
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return ensure_utc(utc_datetime).astimezone(tz)


def local_today(now: Optional[datetime] = None, timezone_str: Optional[str] = None) -> date:
    """The attendance date 'today' in the local timezone."""
    return utc_to_local(now or utc_now(), timezone_str).date()


def combine_date_time(date_val: date, time_val: time, timezone_str: Optional[str] = None) -> datetime:
    """
    Combine a local date and local time into a timezone-aware UTC datetime.
    """
    return local_to_utc(datetime.combine(date_val, time_val), timezone_str)


def auto_clock_out_time(
    attendance_date: date,
    shift_end_time: Optional[str],
    buffer_minutes: Optional[int] = None,
    timezone_str: Optional[str] = None,
) -> datetime:
    """
    Shift end on the attendance date plus the auto clock-out buffer, in UTC.
    Malformed or missing shift end times use settings.default_shift_end.
    """
    if buffer_minutes is None:
        buffer_minutes = settings.auto_clock_out_buffer_min
    shift_end = parse_shift_time(shift_end_time, settings.default_shift_end)
    return combine_date_time(attendance_date, shift_end, timezone_str) + timedelta(minutes=buffer_minutes)


def is_late(
    clock_in_utc: datetime,
    attendance_date: date,
    shift_start_time: Optional[str],
    grace_minutes: int,
    timezone_str: Optional[str] = None,
) -> bool:
    """True when the clock-in is after shift start plus the grace period."""
    shift_start = parse_shift_time(shift_start_time, settings.default_shift_start)
    deadline = combine_date_time(attendance_date, shift_start, timezone_str) + timedelta(minutes=grace_minutes)
    return ensure_utc(clock_in_utc) > deadline
