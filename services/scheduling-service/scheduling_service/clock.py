import re
from datetime import date, datetime, timedelta, timezone

from dateutil import parser

from .errors import ValidationError

_HHMM = re.compile(r"([01]\d|2[0-3]):([0-5]\d)")
_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes; everything is stored in UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_hhmm(value: str) -> int:
    """Zero-padded 24h HH:MM -> minutes since midnight."""
    m = _HHMM.fullmatch(value or "")
    if not m:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    return int(m.group(1)) * 60 + int(m.group(2))


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: str) -> date:
    if not _DATE.fullmatch(value or ""):
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return parser.isoparse(value).date()
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'")


def day_of_week(d: date) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return (d.weekday() + 1) % 7


def at_minutes(d: date, minutes: int) -> datetime:
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc) + timedelta(minutes=minutes)


def minutes_of_day(instant: datetime) -> int:
    instant = as_utc(instant)
    return instant.hour * 60 + instant.minute


def iter_dates(start: date, end: date):
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start
