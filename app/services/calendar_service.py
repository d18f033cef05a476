"""
Calendar / working-day calculator.

Pure date arithmetic with no database access: callers pass the holiday list
in. Weekends are Friday and Saturday. Every leave-related count in the
service layer goes through this module.

Counting rules used by the engine:
- Balance charge: total calendar days of the inclusive range (weekends and
  holidays inside a leave are charged).
- Endpoints: CASUAL and EARNED must start and end on working days.
- Notice: measured in working days strictly between "today" and start.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional, Set, Union

from app.core.exceptions import InvalidRangeError
from app.utils.datetime_utils import to_local_date

# date.weekday(): Monday=0 ... Friday=4, Saturday=5
WEEKEND_DAYS = frozenset({4, 5})

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class DayBreakdown:
    """Day counts for an inclusive range. A holiday on a weekend counts as weekend only."""
    total: int
    weekend_count: int
    holiday_count: int
    working_count: int


def _day(value: DateLike) -> date:
    return to_local_date(value)


def holiday_dates(holidays: Optional[Iterable]) -> Set[date]:
    """
    Build a set of holiday calendar days.

    Accepts Holiday rows (anything with a ``date`` attribute) or plain dates.
    Optional holidays are included: they are non-working days for the engine.
    """
    if not holidays:
        return set()
    return {_day(h if isinstance(h, date) else h.date) for h in holidays}


def is_weekend(day: DateLike) -> bool:
    return _day(day).weekday() in WEEKEND_DAYS


def is_holiday(day: DateLike, holidays: Optional[Iterable]) -> bool:
    return _day(day) in holiday_dates(holidays)


def is_non_working(day: DateLike, holidays: Optional[Iterable]) -> bool:
    d = _day(day)
    return d.weekday() in WEEKEND_DAYS or d in holiday_dates(holidays)


def iter_days(start: DateLike, end: DateLike) -> Iterator[date]:
    """Yield every calendar day of the inclusive range."""
    current, last = _day(start), _day(end)
    while current <= last:
        yield current
        current += timedelta(days=1)


def total_days_inclusive(start: DateLike, end: DateLike) -> int:
    """
    Number of calendar days from start to end inclusive.

    Raises:
        InvalidRangeError: if end is before start
    """
    s, e = _day(start), _day(end)
    if e < s:
        raise InvalidRangeError(f"End date {e} is before start date {s}", {"start_date": str(s), "end_date": str(e)})
    return (e - s).days + 1


def count_days_breakdown(start: DateLike, end: DateLike, holidays: Optional[Iterable] = None) -> DayBreakdown:
    """
    Split an inclusive range into weekend, holiday and working days.

    Raises:
        InvalidRangeError: if end is before start
    """
    total = total_days_inclusive(start, end)
    hdays = holiday_dates(holidays)
    weekend_count = 0
    holiday_count = 0
    for d in iter_days(start, end):
        if d.weekday() in WEEKEND_DAYS:
            weekend_count += 1
        elif d in hdays:
            holiday_count += 1
    return DayBreakdown(
        total=total,
        weekend_count=weekend_count,
        holiday_count=holiday_count,
        working_count=total - weekend_count - holiday_count,
    )


def count_working_days_between(a: DateLike, b: DateLike, holidays: Optional[Iterable] = None) -> int:
    """Working days strictly between a and b (exclusive of both; order-insensitive)."""
    lo, hi = sorted((_day(a), _day(b)))
    hdays = holiday_dates(holidays)
    count = 0
    d = lo + timedelta(days=1)
    while d < hi:
        if d.weekday() not in WEEKEND_DAYS and d not in hdays:
            count += 1
        d += timedelta(days=1)
    return count


def next_working_day(day: DateLike, holidays: Optional[Iterable] = None) -> date:
    """Smallest date >= day that is a working day."""
    hdays = holiday_dates(holidays)
    d = _day(day)
    while d.weekday() in WEEKEND_DAYS or d in hdays:
        d += timedelta(days=1)
    return d


def days_between(earlier: DateLike, later: DateLike) -> int:
    """Signed calendar-day difference later - earlier."""
    return (_day(later) - _day(earlier)).days
