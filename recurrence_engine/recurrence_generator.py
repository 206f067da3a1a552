from __future__ import annotations

import heapq
import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from recurrence_engine.calendar_math import (
    DateWindow,
    Period,
    matching_weekdays,
    resolve_month_day,
    step_date,
    week_window,
)
from recurrence_engine.recurrence_rule import RecurrenceRule
from recurrence_engine.settings import CalendarSettings

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR = CalendarSettings()

Collector = Callable[[date], None]
PeriodGenerator = Callable[[RecurrenceRule, DateWindow, CalendarSettings, Collector], None]


class GenerationAborted(Exception):
    """Calendar arithmetic could not produce the next date."""


def generate_recurring_dates(
    rule: RecurrenceRule,
    window: DateWindow,
    filter_window: Optional[DateWindow] = None,
    settings: Optional[CalendarSettings] = None,
) -> List[date]:
    """Concrete dates ``rule`` denotes inside ``window``, in ascending order.

    When ``filter_window`` is given, only dates inside both windows are
    returned. If calendar arithmetic fails part way (for instance near the
    end of the supported calendar range) the dates collected so far are
    returned.
    """
    calendar = settings or DEFAULT_CALENDAR
    dates: List[date] = []

    def collect(candidate: date) -> None:
        if not window.contains(candidate):
            return
        if filter_window is not None and not filter_window.contains(candidate):
            return
        dates.append(candidate)

    generator = _PERIOD_GENERATORS[rule.period]
    try:
        generator(rule, window, calendar, collect)
    except GenerationAborted as exc:
        logger.warning(
            "Stopped generating %s recurrence after %d dates: %s",
            rule.period.label,
            len(dates),
            exc,
        )
    return dates


def generate_for_rules(
    rules: Iterable[RecurrenceRule],
    window: DateWindow,
    filter_window: Optional[DateWindow] = None,
    settings: Optional[CalendarSettings] = None,
) -> List[Tuple[date, int]]:
    """Occurrences of several rules merged by date, tagged with the rule position."""
    per_rule = [
        [
            (occurrence, position)
            for occurrence in generate_recurring_dates(rule, window, filter_window, settings)
        ]
        for position, rule in enumerate(rules)
    ]
    return list(heapq.merge(*per_rule))


def _step(value: date, period: Period, count: int) -> date:
    try:
        return step_date(value, period, count)
    except (OverflowError, ValueError) as exc:
        raise GenerationAborted(
            f"cannot step {value.isoformat()} by {count} {period.label}(s)"
        ) from exc


def _generate_daily(
    rule: RecurrenceRule,
    window: DateWindow,
    calendar: CalendarSettings,
    collect: Collector,
) -> None:
    cursor = window.start
    while cursor <= window.end:
        collect(cursor)
        if (window.end - cursor).days < rule.frequency:
            break
        cursor = _step(cursor, Period.DAY, rule.frequency)


def _generate_weekly(
    rule: RecurrenceRule,
    window: DateWindow,
    calendar: CalendarSettings,
    collect: Collector,
) -> None:
    positions = rule.weekday_positions()
    if not positions:
        return
    cursor = window.start
    current_week = _week_of(cursor, calendar)
    while current_week.start <= window.end:
        for day in matching_weekdays(current_week, positions):
            collect(day)
        if (window.end - current_week.start).days < 7 * rule.frequency:
            break
        cursor = _step(cursor, Period.WEEK, rule.frequency)
        current_week = _week_of(cursor, calendar)


def _week_of(value: date, calendar: CalendarSettings) -> DateWindow:
    try:
        return week_window(value, calendar.first_weekday)
    except (OverflowError, ValueError) as exc:
        raise GenerationAborted(f"no calendar week around {value.isoformat()}") from exc


def _generate_monthly(
    rule: RecurrenceRule,
    window: DateWindow,
    calendar: CalendarSettings,
    collect: Collector,
) -> None:
    day_index = rule.index if rule.index is not None else window.start.day
    months_in_window = _months_between(window.start, window.end)
    month_offset = 0
    cursor = window.start
    while cursor <= window.end:
        collect(resolve_month_day(cursor, day_index))
        month_offset += rule.frequency
        if month_offset > months_in_window:
            break
        # Always offset from the window start so a clamped day never carries over.
        cursor = _step(window.start, Period.MONTH, month_offset)


def _months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + end.month - start.month


_PERIOD_GENERATORS: Dict[Period, PeriodGenerator] = {
    Period.DAY: _generate_daily,
    Period.WEEK: _generate_weekly,
    Period.MONTH: _generate_monthly,
}
