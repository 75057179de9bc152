from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

from constants import AFTERNOON_START_HOUR, FIXED_HOLIDAYS, MOVABLE_HOLIDAY_OFFSETS
from models import DayOfWeek, Period

DateLike = Union[date, str]


def parse_date(value: DateLike) -> date:
    """Accept a date (datetimes are truncated) or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    if hasattr(value, "date") and callable(value.date):
        return value.date()
    return value


def week_start(value: DateLike) -> date:
    """Monday of the week containing the date (Sunday belongs to the previous Monday)."""
    d = parse_date(value)
    return d - timedelta(days=d.weekday())


def iso_week_number(value: DateLike) -> int:
    return parse_date(value).isocalendar()[1]


def ordinal_weekday_in_month(value: DateLike) -> int:
    """1 for the first such weekday of the month, 2 for the second, ..."""
    return (parse_date(value).day + 6) // 7


def date_for_day(monday: date, day: DayOfWeek) -> date:
    return monday + timedelta(days=day.offset)


def week_dates(monday: date) -> list[date]:
    """Monday to Friday of the given week."""
    return [date_for_day(monday, day) for day in DayOfWeek]


def is_date_in_range(value: DateLike, start: DateLike, end: DateLike) -> bool:
    return parse_date(start) <= parse_date(value) <= parse_date(end)


def period_for_time(time_str: str) -> Period:
    """'HH:MM' before 13:00 is a morning, otherwise an afternoon."""
    hour = datetime.strptime(time_str, "%H:%M").hour
    return Period.MORNING if hour < AFTERNOON_START_HOUR else Period.AFTERNOON


def easter_date(year: int) -> date:
    a = year % 19
    b = year // 100
    c = year % 100
    d = (19 * a + b - b // 4 - ((b - (b + 8) // 25 + 1) // 3) + 15) % 30
    e = (32 + 2 * (b % 4) + 2 * (c // 4) - d - (c % 4)) % 7
    f = d + e - 7 * ((a + 11 * d + 22 * e) // 451) + 114
    month = f // 31
    day = f % 31 + 1
    return date(year, month, day)


def french_holidays(year: int) -> dict[date, str]:
    """All French public holidays of a year, fixed and Easter-derived."""
    holidays = {date(year, month, day): name for (month, day), name in FIXED_HOLIDAYS.items()}
    easter = easter_date(year)
    for name, offset in MOVABLE_HOLIDAY_OFFSETS.items():
        holidays[easter + timedelta(days=offset)] = name
    return dict(sorted(holidays.items()))


def public_holiday(value: DateLike) -> Optional[str]:
    """Name of the holiday falling on this date, or None."""
    d = parse_date(value)
    return french_holidays(d.year).get(d)
