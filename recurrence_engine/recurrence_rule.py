from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import IntEnum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from recurrence_engine.calendar_math import Period, as_date

logger = logging.getLogger(__name__)

MIN_MONTH_DAY = 1
MAX_MONTH_DAY = 31


class RecurrenceWeekday(IntEnum):
    """Weekday as stored in recurrence payloads (Sunday=1, Monday..Saturday=2..7)."""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @property
    def position(self) -> int:
        """Monday-first position, matching ``date.weekday()``."""
        return (self.value - 2) % 7

    @property
    def label(self) -> str:
        return self.name[:3].lower()


def sort_weekdays(weekdays: Iterable[RecurrenceWeekday]) -> List[RecurrenceWeekday]:
    return sorted(set(weekdays), key=lambda weekday: weekday.position)


class RecurrencePayload(BaseModel):
    model_config = ConfigDict(strict=True)

    frequency: int
    period: int
    index: int | None = None
    weekdays: list[int] | None = None


@dataclass(frozen=True)
class RecurrenceSummary:
    frequency: int
    period: str
    weekdays: Tuple[str, ...] = ()
    month_day: int | None = None


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: int
    period: Period
    index: Optional[int] = None
    weekdays: Optional[Tuple[RecurrenceWeekday, ...]] = None

    def __post_init__(self) -> None:
        if isinstance(self.frequency, bool) or not isinstance(self.frequency, int):
            raise ValueError("frequency must be an integer.")
        if self.frequency < 1:
            raise ValueError("frequency must be at least 1.")
        object.__setattr__(self, "period", Period(self.period))
        if self.index is not None and not MIN_MONTH_DAY <= self.index <= MAX_MONTH_DAY:
            raise ValueError("index must be between 1 and 31.")
        if self.weekdays is not None:
            normalized = tuple(
                sort_weekdays(RecurrenceWeekday(weekday) for weekday in self.weekdays)
            )
            object.__setattr__(self, "weekdays", normalized)

    def sorted_weekdays(self) -> List[RecurrenceWeekday]:
        return list(self.weekdays or ())

    def weekday_positions(self) -> List[int]:
        return [weekday.position for weekday in self.weekdays or ()]

    def to_payload(self) -> RecurrencePayload:
        return RecurrencePayload(
            frequency=self.frequency,
            period=int(self.period),
            index=self.index,
            weekdays=None
            if self.weekdays is None
            else [int(weekday) for weekday in self.weekdays],
        )

    def encode(self) -> str:
        return self.to_payload().model_dump_json(exclude_none=True)

    @classmethod
    def from_payload(cls, payload: RecurrencePayload) -> "RecurrenceRule":
        weekdays = None
        if payload.weekdays is not None:
            weekdays = tuple(RecurrenceWeekday(value) for value in payload.weekdays)
        return cls(
            frequency=payload.frequency,
            period=Period(payload.period),
            index=payload.index,
            weekdays=weekdays,
        )

    @classmethod
    def decode(cls, payload: str | bytes | None) -> Optional["RecurrenceRule"]:
        """Decode a stored payload, returning ``None`` when it is not a valid rule."""
        if payload is None:
            return None
        try:
            return cls.from_payload(RecurrencePayload.model_validate_json(payload))
        except (ValidationError, ValueError, TypeError) as exc:
            logger.debug("Discarding undecodable recurrence payload %r: %s", payload, exc)
            return None

    def summarize(self, anchor: date | None = None) -> RecurrenceSummary:
        weekdays: Tuple[str, ...] = ()
        month_day = None
        if self.period is Period.WEEK:
            weekdays = tuple(weekday.label for weekday in self.sorted_weekdays())
        elif self.period is Period.MONTH:
            if self.index is not None:
                month_day = self.index
            elif anchor is not None:
                month_day = as_date(anchor).day
        return RecurrenceSummary(
            frequency=self.frequency,
            period=self.period.label,
            weekdays=weekdays,
            month_day=month_day,
        )
