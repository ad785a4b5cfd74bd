"""
utils/weeks.py — ISO week arithmetic shared by every weekly screen.

Provides:
- ISO week <-> Monday conversion (53-week years included)
- Weeks-since-sowing offset used to join a phase to the SOP catalog
- Small helpers for day indexes (Mon=0) and forecast week columns

All arithmetic is done on calendar dates. Datetimes are reduced to their
date first (aware datetimes are converted to UTC), so the result never
depends on the server timezone.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Tuple

DAY_LABELS = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']
DAYS_PER_WEEK = 7

MIN_YEAR = 1
MAX_YEAR = 9998


class InvalidWeekError(ValueError):
    """Raised for a malformed ISO year/week pair."""


def to_date(value) -> date:
    """Reduce a date or datetime to a calendar date (UTC for aware datetimes)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def weeks_in_year(year: int) -> int:
    """Number of ISO weeks in a year (52 or 53)."""
    _check_year(year)
    # Dec 28 always falls in the last ISO week of its year
    return date(year, 12, 28).isocalendar()[1]


def monday_of_iso_week(year: int, week: int) -> date:
    """
    Return the Monday that starts ISO week `week` of `year`.

    Raises:
        InvalidWeekError: week 0, or week beyond the year's week count.
    """
    _check_year(year)
    if isinstance(week, bool) or not isinstance(week, int):
        raise InvalidWeekError(f"Week must be an integer, got {week!r}")
    last_week = weeks_in_year(year)
    if week < 1 or week > last_week:
        raise InvalidWeekError(f"Week {week} is out of range for {year} (1-{last_week})")

    jan4 = date(year, 1, 4)
    monday_week1 = jan4 - timedelta(days=jan4.weekday())
    return monday_week1 + timedelta(weeks=week - 1)


def iso_week_of(value) -> Tuple[int, int]:
    """Return the (iso_year, iso_week) a date belongs to."""
    iso = to_date(value).isocalendar()
    return iso[0], iso[1]


def weeks_since_sowing(sowing_date, reference_monday) -> int:
    """
    Whole weeks between sowing and the reference Monday (may be negative).

    Floor division, so a phase sown on a Thursday is in week 0 on the
    following Monday and in week -1 on the Monday before sowing.
    """
    delta_days = (to_date(reference_monday) - to_date(sowing_date)).days
    return delta_days // DAYS_PER_WEEK


def monday_of(value) -> date:
    """Monday of the week containing `value`."""
    d = to_date(value)
    return d - timedelta(days=d.weekday())


def day_index(value) -> int:
    """Day of week with Monday = 0."""
    return to_date(value).weekday()


def week_days(monday) -> List[date]:
    """The seven dates of the week starting on `monday`."""
    start = to_date(monday)
    return [start + timedelta(days=i) for i in range(DAYS_PER_WEEK)]


def week_end(monday) -> date:
    """Sunday of the week starting on `monday`."""
    return to_date(monday) + timedelta(days=DAYS_PER_WEEK - 1)


def forecast_mondays(start_monday, count: int = 8) -> List[date]:
    """`count` consecutive Mondays starting at `start_monday`."""
    start = to_date(start_monday)
    return [start + timedelta(weeks=i) for i in range(max(0, count))]


def format_week(value) -> str:
    """External week identifier: the Monday as YYYY-MM-DD."""
    return to_date(value).isoformat()


def week_label(monday) -> str:
    """Column label such as 'W5 (27 Jan)'."""
    d = to_date(monday)
    _, week = iso_week_of(d)
    return f"W{week} ({d.day} {d.strftime('%b')})"


def _check_year(year):
    if isinstance(year, bool) or not isinstance(year, int):
        raise InvalidWeekError(f"Year must be an integer, got {year!r}")
    if year < MIN_YEAR or year > MAX_YEAR:
        raise InvalidWeekError(f"Year {year} is out of range")
