#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from cadence.apps_implementation.events import Event, update_event
from cadence.apps_implementation.exceptions import InvalidInputError, NotFoundError
from cadence.apps_implementation.occurrences import (
    Occurrence,
    OccurrenceStatus,
    classify_occurrences,
    count_active,
    project,
)
from cadence.apps_implementation.overlay import Overlay
from cadence.apps_implementation.recurring_events import (
    create_series,
    exclude_date,
    modify_occurrence,
    update_series,
)
from cadence.apps_implementation.time_utils import RecurrencePattern, month_range

ORGANISER = "organiser-1"

JANUARY = month_range(2024, 1)


@pytest.fixture
def series_id(template_event: Event, mondays: RecurrencePattern) -> str:
    return create_series(template_event.event_id, mondays, ORGANISER).series_id


def test_project_plain_series(series_id: str):

    occurrences = project(series_id, JANUARY.start, JANUARY.end)
    assert [o.date.day for o in occurrences] == [1, 8, 15, 22, 29]
    assert all(o.status == OccurrenceStatus.REGULAR for o in occurrences)
    assert count_active(occurrences) == 5


def test_excluded_dates_are_reported_but_not_counted(series_id: str):

    exclude_date(series_id, datetime.date(2024, 1, 8), ORGANISER)
    occurrences = project(series_id, JANUARY.start, JANUARY.end)
    assert len(occurrences) == 5
    assert occurrences[1] == Occurrence(
        datetime.date(2024, 1, 8), OccurrenceStatus.EXCLUDED
    )
    assert not occurrences[1].active
    assert count_active(occurrences) == 4


def test_modified_occurrences_carry_substitute(series_id: str):

    series = modify_occurrence(
        series_id, datetime.date(2024, 1, 15), {"location": "Gym"}, ORGANISER
    )
    occurrences = project(series_id, JANUARY.start, JANUARY.end)
    modified = [o for o in occurrences if o.status == OccurrenceStatus.MODIFIED]
    assert modified == [
        Occurrence(
            datetime.date(2024, 1, 15),
            OccurrenceStatus.MODIFIED,
            series.overlay.substitute_for(datetime.date(2024, 1, 15)),
        )
    ]
    assert count_active(occurrences) == 5


def test_overlay_dates_outside_pattern_are_not_projected():

    overlay = Overlay(
        excluded_dates={datetime.date(2024, 1, 9)},
        modified_occurrences={datetime.date(2024, 1, 10): "substitute-1"},
    )
    dates = [datetime.date(2024, 1, 8), datetime.date(2024, 1, 15)]
    assert classify_occurrences(dates, overlay) == [
        Occurrence(date, OccurrenceStatus.REGULAR) for date in dates
    ]


def test_pattern_change_hides_stale_overlay_entries(series_id: str):

    exclude_date(series_id, datetime.date(2024, 1, 8), ORGANISER)
    # move the series to Wednesdays; the Monday exclusion no longer matches
    update_series(series_id, ORGANISER, pattern={"days_of_week": [3]})
    occurrences = project(series_id, JANUARY.start, JANUARY.end)
    assert [o.date.day for o in occurrences] == [3, 10, 17, 24, 31]
    assert count_active(occurrences) == 5


def test_project_follows_template_start(series_id: str, template_event: Event):

    update_event(
        template_event.event_id,
        starts_at=datetime.datetime(2024, 1, 15, 18, 0),
        ends_at=datetime.datetime(2024, 1, 15, 19, 0),
    )
    occurrences = project(series_id, JANUARY.start, JANUARY.end)
    assert [o.date.day for o in occurrences] == [15, 22, 29]


def test_project_accepts_datetimes(series_id: str):

    occurrences = project(
        series_id,
        datetime.datetime(2024, 1, 8, 12, 0),
        datetime.datetime(2024, 1, 8, 9, 0),
    )
    assert [o.date for o in occurrences] == [datetime.date(2024, 1, 8)]


def test_project_invalid_window(series_id: str):

    with pytest.raises(InvalidInputError):
        project(series_id, JANUARY.end, JANUARY.start)


def test_project_unknown_series():

    with pytest.raises(NotFoundError):
        project("no-such-series", JANUARY.start, JANUARY.end)
