"""Organization-local time helpers.

Instants are stored as naive UTC datetimes. Calendar dates are always the
organization's local dates, resolved through its IANA timezone.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "America/New_York"
DATE_FORMAT = "%Y-%m-%d"


def get_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    name = tz_name or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today(tz_name: Optional[str] = None) -> date:
    return datetime.now(get_zone(tz_name)).date()


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FORMAT).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def parse_local_time(value) -> float:
    """Parse ``"HH:MM"`` (``"24:00"`` allowed) or a number into fractional hours."""
    if isinstance(value, (int, float)):
        hours = float(value)
    elif isinstance(value, time):
        hours = value.hour + value.minute / 60
    else:
        text = str(value).strip()
        try:
            hour_text, _, minute_text = text.partition(":")
            hours = int(hour_text) + (int(minute_text) / 60 if minute_text else 0)
        except ValueError as exc:
            raise ValueError(f"Invalid time '{value}', expected HH:MM") from exc
    if not 0 <= hours <= 24:
        raise ValueError(f"Time '{value}' is outside of the day")
    return hours


def local_to_utc(day: date, hours: float, tz_name: Optional[str] = None) -> datetime:
    """Resolve a local wall-clock offset (hours after local midnight) to naive UTC."""
    local_midnight = datetime.combine(day, time(0))
    local_dt = local_midnight + timedelta(hours=hours)
    aware = local_dt.replace(tzinfo=get_zone(tz_name))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_local(value: Optional[datetime], tz_name: Optional[str] = None) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_zone(tz_name))


def local_window(
    day: date, start_hours: float, end_hours: float, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    if end_hours <= start_hours:
        raise ValueError("End time must be after start time")
    return local_to_utc(day, start_hours, tz_name), local_to_utc(day, end_hours, tz_name)


def local_day_bounds(day: date, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    return local_to_utc(day, 0, tz_name), local_to_utc(day + timedelta(days=1), 0, tz_name)


def local_hours(
    start_utc: datetime, end_utc: datetime, day: date, tz_name: Optional[str] = None
) -> Tuple[float, float]:
    """Hours after local midnight of ``day`` for a stored UTC window."""
    midnight = datetime.combine(day, time(0)).replace(tzinfo=get_zone(tz_name))
    start = utc_to_local(start_utc, tz_name)
    end = utc_to_local(end_utc, tz_name)
    return (
        (start - midnight).total_seconds() / 3600,
        (end - midnight).total_seconds() / 3600,
    )


def format_local_time(value: Optional[datetime], tz_name: Optional[str] = None) -> Optional[str]:
    local = utc_to_local(value, tz_name)
    return local.strftime("%H:%M") if local else None
