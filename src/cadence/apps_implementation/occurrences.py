#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Projects a series onto a date window: the dates its pattern generates, each
tagged with how the overlay treats it."""

import datetime
from collections.abc import Iterable
from enum import StrEnum, auto
from typing import NamedTuple

from cadence.apps_implementation.events import EventId
from cadence.apps_implementation.overlay import Overlay
from cadence.apps_implementation.recurring_events import (
    RecurringEvent,
    SeriesId,
    get_series,
    get_series_start,
)
from cadence.apps_implementation.time_utils import as_date, generate


class OccurrenceStatus(StrEnum):
    REGULAR = auto()
    MODIFIED = auto()
    EXCLUDED = auto()


class Occurrence(NamedTuple):
    """One date of a series.

    Parameters
    ----------
    substitute_event_id
        Only set for modified occurrences: the event holding this occurrence's
        content.
    """

    date: datetime.date
    status: OccurrenceStatus
    substitute_event_id: EventId | None = None

    @property
    def active(self) -> bool:
        return self.status != OccurrenceStatus.EXCLUDED


def classify_occurrences(
    dates: Iterable[datetime.date], overlay: Overlay
) -> list[Occurrence]:
    """Tag generated dates with their overlay status. Exclusion takes precedence
    over modification."""
    occurrences = []
    for date in dates:
        if overlay.is_excluded(date):
            occurrences.append(Occurrence(date, OccurrenceStatus.EXCLUDED))
        elif (substitute_id := overlay.substitute_for(date)) is not None:
            occurrences.append(
                Occurrence(date, OccurrenceStatus.MODIFIED, substitute_id)
            )
        else:
            occurrences.append(Occurrence(date, OccurrenceStatus.REGULAR))
    return occurrences


def project_series(
    series: RecurringEvent,
    series_start: datetime.date,
    window_start: datetime.date,
    window_end: datetime.date,
) -> list[Occurrence]:
    """Project an already loaded series onto `[window_start, window_end]`."""
    dates = generate(series.pattern, series_start, window_start, window_end)
    return classify_occurrences(dates, series.overlay)


def project(
    series_id: SeriesId,
    window_start: datetime.date,
    window_end: datetime.date,
) -> list[Occurrence]:
    """Return the occurrences of a series inside the inclusive window, in
    ascending date order.

    Notes
    -----
    1. Excluded occurrences are returned, tagged `EXCLUDED`, so calendars can show
    them struck through. Use `Occurrence.active` to leave them out of counts.
    2. The result is computed from the stored series on every call.

    Raises
    ------
    NotFoundError if the series or its template event does not exist.
    InvalidInputError if the window ends before it starts.
    """
    series = get_series(series_id)
    return project_series(
        series, get_series_start(series), as_date(window_start), as_date(window_end)
    )


def count_active(occurrences: Iterable[Occurrence]) -> int:
    """Number of occurrences that will take place."""
    return sum(1 for occurrence in occurrences if occurrence.active)
