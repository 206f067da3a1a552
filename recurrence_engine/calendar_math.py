from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Iterable, List

DAYS_PER_WEEK = 7
MONDAY = 0
SUNDAY = 6


class Period(IntEnum):
    DAY = 0
    WEEK = 1
    MONTH = 2

    @property
    def label(self) -> str:
        return self.name.lower()


def as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class DateWindow:
    """Closed date range, compared at day granularity."""

    start: date
    end: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_date(self.start))
        object.__setattr__(self, "end", as_date(self.end))
        if self.start > self.end:
            raise ValueError("window start must be on or before window end.")

    def contains(self, value: date) -> bool:
        return self.start <= as_date(value) <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def step_date(value: date, period: Period, count: int) -> date:
    """Move ``value`` forward by ``count`` periods.

    Month steps keep the day of month when the target month has it and land on
    the target month's last day otherwise. Raises ``OverflowError`` when the
    result falls outside the supported calendar range.
    """
    period = Period(period)
    if period is Period.DAY:
        return value + timedelta(days=count)
    if period is Period.WEEK:
        return value + timedelta(days=DAYS_PER_WEEK * count)
    if period is Period.MONTH:
        return _add_months(value, count)
    raise ValueError(f"Unsupported period: {period!r}")


def _add_months(value: date, months: int) -> date:
    total_month = value.month - 1 + months
    year = value.year + total_month // 12
    month = total_month % 12 + 1
    if not 1 <= year <= 9999:
        raise OverflowError("month arithmetic left the supported calendar range.")
    day = min(value.day, days_in_month(year, month))
    return value.replace(year=year, month=month, day=day)


def week_window(containing: date, first_weekday: int = MONDAY) -> DateWindow:
    day = as_date(containing)
    offset = (day.weekday() - first_weekday) % DAYS_PER_WEEK
    start = day - timedelta(days=offset)
    return DateWindow(start, start + timedelta(days=DAYS_PER_WEEK - 1))


def matching_weekdays(window: DateWindow, weekdays: Iterable[int]) -> List[date]:
    """Dates in ``window`` whose ``date.weekday()`` is in ``weekdays``."""
    wanted = set(weekdays)
    if not wanted:
        return []
    matches: List[date] = []
    current = window.start
    while current <= window.end:
        if current.weekday() in wanted:
            matches.append(current)
        if current == date.max:
            break
        current += timedelta(days=1)
    return matches


def resolve_month_day(month_of: date, day_index: int) -> date:
    day = as_date(month_of)
    last_day = days_in_month(day.year, day.month)
    return day.replace(day=max(1, min(day_index, last_day)))
