#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Recurrence patterns and the pure date arithmetic that expands them into
occurrence dates. Nothing in this module knows about exclusions or
modified occurrences; see `overlay` and `occurrences` for those."""

import calendar
import datetime
from collections.abc import Generator, Mapping
from enum import StrEnum, auto
from typing import Annotated, Any, NamedTuple, Self

from dateutil import rrule
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cadence.apps_implementation.exceptions import InvalidInputError

# index 0 is Sunday, matching the weekday numbering used by calendar clients
WEEKDAYS = (rrule.SU, rrule.MO, rrule.TU, rrule.WE, rrule.TH, rrule.FR, rrule.SA)

WeekdayIndex = Annotated[int, Field(ge=0, le=6)]


def now_() -> datetime.datetime:
    """Return the current date and time."""
    return datetime.datetime.now()


class DateRange(NamedTuple):
    """Represents an inclusive range between two dates."""

    start: datetime.date
    end: datetime.date


def month_range(year: int, month: int) -> DateRange:
    """The first and last day of `month` (1-indexed) in `year`."""
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(
        start=datetime.date(year, month, 1), end=datetime.date(year, month, last_day)
    )


def as_date(value: datetime.date | datetime.datetime) -> datetime.date:
    """Truncate `value` to a calendar date. Overlays work at date granularity."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    raise InvalidInputError(f"Expected a date, got {value!r}")


def weekday_index(d: datetime.date) -> int:
    """Weekday of `d` with Sunday as 0 and Saturday as 6."""
    return (d.weekday() + 1) % 7


class Frequency(StrEnum):
    DAILY = auto()
    WEEKLY = auto()
    MONTHLY = auto()
    YEARLY = auto()


class RecurrencePattern(BaseModel):
    """Describes how often a recurring event repeats.

    Parameters
    ----------
    frequency
        The unit the series steps in.
    interval
        Every `interval` units of `frequency`. For example, WEEKLY with an interval
        of 2 is every other week.
    days_of_week
        Weekdays the event happens on, with 0 for Sunday and 6 for Saturday. Only used
        by WEEKLY patterns. When empty, the weekday of the series start is used.
    day_of_month
        Day of the month (1-indexed), used by MONTHLY and YEARLY patterns. Months
        shorter than this day use their last day instead. Defaults to the day of the
        series start.
    month_of_year
        Month of the year, 0 for January and 11 for December. Only used by YEARLY
        patterns. Defaults to the month of the series start.
    end_date
        Exclusive upper bound: nothing is generated on or after this date.
    count
        Total number of occurrences in the series, counted from the series start.

    Notes
    -----
    1. `end_date` and `count` may both be set, in which case the series stops at
    whichever is reached first.
    2. Fields that do not apply to `frequency` are kept so that switching back to a
    frequency that uses them restores the previous behaviour.
    """

    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    days_of_week: tuple[WeekdayIndex, ...] = ()
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    month_of_year: int | None = Field(default=None, ge=0, le=11)
    end_date: datetime.date | None = None
    count: int | None = Field(default=None, ge=1)

    @field_validator("days_of_week", mode="after")
    @classmethod
    def _sort_days(cls, days: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(sorted(set(days)))

    @property
    def finite(self) -> bool:
        return self.count is not None or self.end_date is not None

    def merge(self, updates: Mapping[str, Any]) -> Self:
        """Return a new pattern with `updates` applied on top of this one.

        Raises
        ------
        InvalidInputError if the merged pattern is not valid.
        """
        return validate_pattern({**self.model_dump(), **updates})

    def to_rrule(self, series_start: datetime.date) -> rrule.rrule:
        """Build the `dateutil` rule expanding this pattern from `series_start`."""
        dtstart = datetime.datetime.combine(series_start, datetime.time())
        rule_params = {
            "freq": _FREQ_MAP[self.frequency],
            "interval": self.interval,
            "dtstart": dtstart,
            "count": self.count,
            "wkst": rrule.SU,
        }
        if self.end_date is not None:
            # rrule treats `until` as inclusive
            rule_params["until"] = datetime.datetime.combine(
                self.end_date - datetime.timedelta(days=1), datetime.time()
            )
        if self.frequency == Frequency.WEEKLY and self.days_of_week:
            rule_params["byweekday"] = [WEEKDAYS[day] for day in self.days_of_week]
        elif self.frequency in (Frequency.MONTHLY, Frequency.YEARLY):
            day = self.day_of_month or series_start.day
            if day > 28:
                # the last existing day among 28..day clamps short months
                rule_params["bymonthday"] = list(range(28, day + 1))
                rule_params["bysetpos"] = -1
            else:
                rule_params["bymonthday"] = day
            if self.frequency == Frequency.YEARLY:
                month = (
                    self.month_of_year
                    if self.month_of_year is not None
                    else series_start.month - 1
                )
                rule_params["bymonth"] = month + 1
        return rrule.rrule(**{k: v for k, v in rule_params.items() if v is not None})


_FREQ_MAP = {
    Frequency.DAILY: rrule.DAILY,
    Frequency.WEEKLY: rrule.WEEKLY,
    Frequency.MONTHLY: rrule.MONTHLY,
    Frequency.YEARLY: rrule.YEARLY,
}


def validate_pattern(data: RecurrencePattern | Mapping[str, Any]) -> RecurrencePattern:
    """Parse `data` into a pattern, converting validation failures to
    `InvalidInputError`. Out-of-range values are rejected, never clamped."""
    if isinstance(data, RecurrencePattern):
        return data
    try:
        return RecurrencePattern.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidInputError(f"Invalid recurrence pattern: {e}") from e


def iter_occurrences(
    pattern: RecurrencePattern, series_start: datetime.date
) -> Generator[datetime.date, None, None]:
    """Lazily yield every date of the series in ascending order. The
    sequence is infinite unless the pattern sets `end_date` or `count`."""
    for occurrence in pattern.to_rrule(series_start):
        yield occurrence.date()


def generate(
    pattern: RecurrencePattern,
    series_start: datetime.date,
    window_start: datetime.date,
    window_end: datetime.date,
) -> list[datetime.date]:
    """Return the dates of the series falling inside the inclusive window
    `[window_start, window_end]`.

    Parameters
    ----------
    pattern
        The recurrence rule.
    series_start
        The date of the first event in the series (ie the template event date).
        `count` is counted from here, not from `window_start`.
    window_start, window_end
        The window of interest. Must be finite.

    Raises
    ------
    InvalidInputError if the window ends before it starts.
    """
    if window_start > window_end:
        raise InvalidInputError(
            f"Window start {window_start} is after window end {window_end}"
        )
    dates = []
    for occurrence in iter_occurrences(pattern, series_start):
        if occurrence > window_end:
            break
        if occurrence >= window_start:
            dates.append(occurrence)
    return dates


def occurs_on(
    pattern: RecurrencePattern, series_start: datetime.date, d: datetime.date
) -> bool:
    """Whether the series generates an occurrence on `d`."""
    return bool(generate(pattern, series_start, d, d))
