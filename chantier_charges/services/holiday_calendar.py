"""Working-day calendar for billing: weekends plus French public holidays.

Every value is reduced to a plain calendar ``date`` before any weekday
arithmetic; aware datetimes are converted to UTC first so that the weekday
never depends on the host's local timezone.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from functools import lru_cache

# Saturday, Sunday
WEEKEND_WEEKDAYS = frozenset({5, 6})

FIXED_HOLIDAYS: tuple[tuple[int, int], ...] = (
    (1, 1),
    (5, 1),
    (5, 8),
    (7, 14),
    (8, 15),
    (11, 1),
    (11, 11),
    (12, 25),
)

# Easter Monday, Ascension Thursday, Whit Monday
EASTER_OFFSETS_DAYS: tuple[int, ...] = (1, 39, 50)


def easter_sunday(year: int) -> date:
    """Anonymous Gregorian computus (Meeus/Jones/Butcher)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    shift = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * shift) // 451
    month, day = divmod(h + shift - 7 * m + 114, 31)
    return date(year, month, day + 1)


@lru_cache(maxsize=64)
def public_holidays(year: int) -> frozenset[date]:
    easter = easter_sunday(year)
    movable = {easter + timedelta(days=offset) for offset in EASTER_OFFSETS_DAYS}
    fixed = {date(year, month, day) for month, day in FIXED_HOLIDAYS}
    return frozenset(movable | fixed)


def to_calendar_date(value: date | datetime | str | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raw = value.strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return to_calendar_date(parsed)


def is_public_holiday(value: date | datetime | str | None) -> bool:
    day = to_calendar_date(value)
    if day is None:
        return False
    return day in public_holidays(day.year)


def is_working_day(value: date | datetime | str | None) -> bool:
    day = to_calendar_date(value)
    if day is None:
        return False
    if day.weekday() in WEEKEND_WEEKDAYS:
        return False
    return day not in public_holidays(day.year)
